"""HTTP + SSE server for the agentgate orchestrator.

Exposes a small REST API for starting runs, answering approval requests
and managing approval settings, plus Server-Sent Events carrying every
engine event in real time.

Usage:
    agentgate --server [--port PORT]
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
import uuid
from typing import Any

from aiohttp import web

from agentgate.adapters.events import OrchestratorEvent, event_to_dict
from agentgate.adapters.orchestrator import OrchestratorBridge
from agentgate.engine.approval import parse_decision
from agentgate.engine.errors import InvalidDecisionError
from agentgate.engine.models import ApprovalMode, ApprovalRequest, RunContext, RunOptions

logger = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 30.0


def serialize_approval(request: ApprovalRequest) -> dict[str, Any]:
    return {
        "request_id": request.request_id,
        "tool_call_id": request.tool_call_id,
        "tool_name": request.tool_name,
        "server_name": request.server_name,
        "arguments": request.args,
        "mode": request.mode.value,
        "requested_at": request.requested_at,
        "auto_approve_at": request.auto_approve_at,
    }


class AgentGateServer:
    """HTTP + SSE server wrapping one OrchestratorBridge.

    Thin adapter: orchestration state lives in the bridge and the engine.
    This class only handles HTTP routing, SSE fan-out, and run tasks.
    """

    def __init__(
        self,
        bridge: OrchestratorBridge,
        host: str = "127.0.0.1",
        port: int = 0,
    ) -> None:
        self._bridge = bridge
        self._host = host
        self._port = port
        self._sse_queues: list[asyncio.Queue[dict[str, Any]]] = []
        self._started_at = time.time()
        self._consumer_task: asyncio.Task | None = None
        self._run_task: asyncio.Task | None = None
        self._app = web.Application(middlewares=[self._request_logging_middleware])
        self._app.on_startup.append(self._on_startup)
        self._app.on_cleanup.append(self._on_cleanup)
        self._setup_routes()

    @property
    def app(self) -> web.Application:
        return self._app

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = request.headers.get("x-agentgate-request-id", str(uuid.uuid4())[:8])
        request["req_id"] = req_id
        start = time.monotonic()
        logger.info("HTTP %s %s req=%s from=%s", request.method, request.path_qs, req_id, request.remote)
        try:
            response = await handler(request)
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.info(
                "HTTP %s %s req=%s status=%s duration_ms=%.1f",
                request.method, request.path_qs, req_id,
                getattr(response, "status", "?"), elapsed_ms,
            )
            return response
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception("HTTP %s %s req=%s failed duration_ms=%.1f", request.method, request.path_qs, req_id, elapsed_ms)
            raise

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_get("/health", self._handle_health)
        r.add_get("/events", self._handle_sse)
        r.add_post("/run", self._handle_run)
        # Registered before /approvals/{request_id} so "cancel" is not taken as an id.
        r.add_post("/approvals/cancel", self._handle_cancel_approvals)
        r.add_post("/approvals/{request_id}", self._handle_resolve_approval)
        r.add_get("/approvals", self._handle_list_approvals)
        r.add_get("/settings", self._handle_get_settings)
        r.add_post("/settings/mode", self._handle_set_mode)
        r.add_delete("/settings/whitelist/{entry_id}", self._handle_remove_whitelist_entry)

    # ── Lifecycle ──

    async def _on_startup(self, app: web.Application) -> None:
        self._consumer_task = asyncio.create_task(self._consume_events())

    async def _on_cleanup(self, app: web.Application) -> None:
        await self._bridge.shutdown()
        for task in (self._run_task, self._consumer_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.debug("Task raised during cleanup", exc_info=True)

    async def start(self) -> None:
        """Start the server and print the port to stdout."""
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        await site.start()

        actual_port = self._resolve_port(site, runner)
        if actual_port is None:
            raise RuntimeError("agentgate server started but no listening socket was reported.")
        self._port = actual_port

        sys.stdout.write(json.dumps({"port": actual_port}) + "\n")
        sys.stdout.flush()
        logger.info("agentgate server listening on %s:%d", self._host, actual_port)

        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Server shutting down")
        finally:
            await runner.cleanup()

    @staticmethod
    def _resolve_port(site, runner) -> int | None:
        sockets = getattr(getattr(site, "_server", None), "sockets", None) or ()
        if sockets:
            return sockets[0].getsockname()[1]
        addresses = getattr(runner, "addresses", None) or ()
        if addresses:
            first = addresses[0]
            if isinstance(first, tuple) and len(first) >= 2:
                return int(first[1])
        return None

    # ── SSE fan-out ──

    def _broadcast_sse(self, event_type: str, data: dict[str, Any]) -> None:
        msg = {"event": event_type, "data": data}
        for queue in self._sse_queues:
            try:
                queue.put_nowait(msg)
            except asyncio.QueueFull:
                logger.warning("SSE queue full, dropping event")

    async def _consume_events(self) -> None:
        try:
            async for event in self._bridge.event_bus.consume():
                try:
                    self._process_event(event)
                except Exception:
                    logger.exception(
                        "Error processing event %s (consumer continues)",
                        getattr(event, "event_type", "?"),
                    )
        except asyncio.CancelledError:
            pass

    def _process_event(self, event: OrchestratorEvent) -> None:
        event_dict = event_to_dict(event)
        event_type = event_dict.pop("event", event.event_type)
        self._broadcast_sse(event_type, event_dict)

    async def _run_goal(self, goal: str, context: RunContext, options: RunOptions) -> None:
        try:
            await self._bridge.run(goal, context=context, options=options)
        except Exception:
            # Already logged and reported as run_finished by the bridge.
            logger.debug("Run task ended with an error", exc_info=True)

    # ── HTTP handlers ──

    @staticmethod
    async def _read_json(request: web.Request) -> tuple[dict[str, Any] | None, web.Response | None]:
        try:
            body = await request.json()
        except (json.JSONDecodeError, ValueError):
            return None, web.json_response({"error": "Invalid JSON body"}, status=400)
        if not isinstance(body, dict):
            return None, web.json_response({"error": "JSON body must be an object"}, status=400)
        return body, None

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "pid": os.getpid(),
            "uptime_seconds": round(max(0.0, time.time() - self._started_at), 3),
            "configured": self._bridge.configured,
            "running": self._bridge.running,
            "pending_approvals": len(self._bridge.pending_approvals()),
        })

    async def _handle_sse(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse(
            status=200,
            headers={
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
            },
        )
        await response.prepare(request)

        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=5000)
        self._sse_queues.append(queue)
        logger.info("SSE client connected req=%s active_clients=%d", request.get("req_id", "unknown"), len(self._sse_queues))

        try:
            pending = [serialize_approval(r) for r in self._bridge.pending_approvals()]
            await response.write(
                f"event: connected\ndata: {json.dumps({'running': self._bridge.running, 'pending_approvals': pending})}\n\n".encode()
            )
            while True:
                try:
                    msg = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                    data = json.dumps(msg["data"], default=str)
                    await response.write(f"event: {msg['event']}\ndata: {data}\n\n".encode())
                except asyncio.TimeoutError:
                    await response.write(b": keepalive\n\n")
                except ConnectionResetError:
                    break
        except asyncio.CancelledError:
            pass
        finally:
            self._sse_queues.remove(queue)
            logger.info("SSE client disconnected req=%s active_clients=%d", request.get("req_id", "unknown"), len(self._sse_queues))
        return response

    async def _handle_run(self, request: web.Request) -> web.Response:
        body, err = await self._read_json(request)
        if err:
            return err
        goal = str(body.get("goal", "")).strip()
        if not goal:
            return web.json_response({"error": "No goal provided"}, status=400)
        if not self._bridge.configured:
            return web.json_response({"error": "Orchestrator not configured"}, status=503)
        if self._bridge.running or (self._run_task is not None and not self._run_task.done()):
            return web.json_response({"error": "Orchestration already in progress"}, status=409)

        max_iterations = body.get("max_tool_iterations")
        server_filter = body.get("server_filter")
        try:
            options = RunOptions(
                system_prompt=body.get("system_prompt"),
                max_tool_iterations=int(max_iterations) if max_iterations is not None else None,
                server_filter=[str(s) for s in server_filter] if server_filter is not None else None,
            )
        except (TypeError, ValueError):
            return web.json_response({"error": "Invalid run options"}, status=400)
        context = RunContext(video_url=body.get("video_url"))

        logger.info("Run requested goal_len=%d video=%s", len(goal), bool(context.video_url))
        self._run_task = asyncio.create_task(self._run_goal(goal, context, options))
        return web.json_response({"status": "started"}, status=202)

    async def _handle_resolve_approval(self, request: web.Request) -> web.Response:
        request_id = request.match_info["request_id"]
        body, err = await self._read_json(request)
        if err:
            return err
        try:
            decision = parse_decision(body)
        except InvalidDecisionError as exc:
            return web.json_response({"error": str(exc)}, status=400)

        logger.info("Resolve approval request_id=%s decision=%s", request_id[:8], decision.kind.value)
        if not self._bridge.resolve_approval(request_id, decision):
            return web.json_response(
                {"error": f"No pending approval {request_id}"}, status=404,
            )
        return web.json_response({"status": "resolved", "request_id": request_id})

    async def _handle_cancel_approvals(self, request: web.Request) -> web.Response:
        reason = None
        if request.can_read_body:
            body, err = await self._read_json(request)
            if err:
                return err
            reason = body.get("reason")
        cancelled = self._bridge.cancel_all_pending(reason)
        return web.json_response({"status": "cancelled", "cancelled": cancelled})

    async def _handle_list_approvals(self, request: web.Request) -> web.Response:
        return web.json_response({
            "approvals": [serialize_approval(r) for r in self._bridge.pending_approvals()],
        })

    async def _handle_get_settings(self, request: web.Request) -> web.Response:
        if not self._bridge.configured:
            return web.json_response({"error": "Orchestrator not configured"}, status=503)
        return web.json_response(self._bridge.get_settings().to_dict())

    async def _handle_set_mode(self, request: web.Request) -> web.Response:
        if not self._bridge.configured:
            return web.json_response({"error": "Orchestrator not configured"}, status=503)
        body, err = await self._read_json(request)
        if err:
            return err
        try:
            mode = ApprovalMode.parse(body.get("mode"))
        except ValueError as exc:
            return web.json_response({"error": str(exc)}, status=400)
        self._bridge.set_mode(mode)
        self._broadcast_sse("settings_changed", {"mode": mode.value})
        return web.json_response(self._bridge.get_settings().to_dict())

    async def _handle_remove_whitelist_entry(self, request: web.Request) -> web.Response:
        if not self._bridge.configured:
            return web.json_response({"error": "Orchestrator not configured"}, status=503)
        entry_id = request.match_info["entry_id"]
        if not self._bridge.remove_whitelist_entry(entry_id):
            return web.json_response({"error": f"Whitelist entry {entry_id} not found"}, status=404)
        self._broadcast_sse("settings_changed", {"removed": entry_id})
        return web.json_response(self._bridge.get_settings().to_dict())
