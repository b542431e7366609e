"""Top-level orchestration engine.

Runs the tool-calling loop: one model turn per iteration, tool calls
dispatched one at a time through the approval gate and the output
buffer, until the model stops or the iteration budget runs out.

Usage:
    from agentgate.engine import OrchestrationEngine, ToolRegistry

    registry = ToolRegistry()
    engine = OrchestrationEngine(provider, registry)
    result = await engine.run("Create a task for the bug in this video")
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from .approval import ApprovalGate, ApprovalOutcome, denial_message
from .approval_policy import (
    ApprovalPolicy,
    ApprovalSnapshot,
    InMemorySettingsStore,
    ToolApprovalSettingsStore,
)
from .config import EngineConfig, fire_event
from .errors import MaxToolIterationsError, RunInProgressError
from .models import (
    ApprovalDecision,
    ApprovalDecisionKind,
    ApprovalRequest,
    FinishReason,
    Message,
    RunContext,
    RunOptions,
    ToolCallRequest,
    ToolDefinition,
    ToolResult,
)
from .output_buffer import TOOL_OUTPUT_REF_FIELD, ToolOutputBuffer, serialize_output
from .prompts import build_system_prompt
from .providers.base import LanguageModelProvider
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)

CONTENT_FILTER_MESSAGE = "The response was blocked by the content filter."
LENGTH_MESSAGE = (
    "The response was truncated because the model reached its output limit."
)
# Event payloads carry a preview of tool output, the buffer keeps all of it.
EVENT_RESULT_PREVIEW_CHARS = 2000


def _format_arguments(args: Any) -> str:
    try:
        return json.dumps(args, indent=2)
    except (TypeError, ValueError):
        return str(args)


def build_correction_message(
    tool_name: str, args: Any, feedback: str | None,
) -> str:
    """Text sent back to the model when the user asks for changes."""
    parts = [f"The user requested changes to the tool call '{tool_name}'."]
    feedback = (feedback or "").strip()
    if feedback:
        parts.append(f"User feedback: {feedback}")
    parts.append(f"Previous arguments:\n{_format_arguments(args)}")
    parts.append(
        "Update your plan to address the feedback, then call the tool again "
        "with revised arguments or choose a different tool."
    )
    return "\n\n".join(parts)


class OrchestrationEngine:
    """Tool-calling loop with human approval.

    One run at a time per engine. The output buffer and the pending
    approvals belong to the engine and are shared by its runs.
    """

    def __init__(
        self,
        provider: LanguageModelProvider,
        tool_registry: ToolRegistry,
        settings_store: ToolApprovalSettingsStore | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._config = config or EngineConfig.from_env()
        self._event_callback = self._config.event_callback
        self._provider = provider
        self._tool_registry = tool_registry
        self._policy = ApprovalPolicy(settings_store or InMemorySettingsStore())
        self._gate = ApprovalGate(
            event_callback=self._event_callback,
            auto_approve_delay=self._config.auto_approve_delay_seconds,
        )
        self._buffer = ToolOutputBuffer()
        self._running = False

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._running

    @property
    def output_buffer(self) -> ToolOutputBuffer:
        return self._buffer

    @property
    def policy(self) -> ApprovalPolicy:
        return self._policy

    # ── Inbound commands ──

    def resolve_approval(self, request_id: str, decision: ApprovalDecision) -> bool:
        """Settle a pending approval. False if unknown or already settled."""
        return self._gate.resolve(request_id, decision)

    def cancel_all_pending(self, reason: str | None = None) -> int:
        """Deny every approval still waiting on a human."""
        return self._gate.cancel_all_pending(reason)

    def pending_approvals(self) -> list[ApprovalRequest]:
        return self._gate.pending_requests()

    # ── Run loop ──

    async def run(
        self,
        goal: str,
        context: RunContext | None = None,
        options: RunOptions | None = None,
    ) -> str | None:
        """Drive the model until it finishes.

        Returns the model's final text on "stop", a fixed explanation on
        "content-filter" or "length", the denial message when the user
        stops a tool call, and None for any other finish reason.
        Raises MaxToolIterationsError when the budget is exhausted.
        """
        if self._running:
            raise RunInProgressError()
        self._running = True
        try:
            return await self._run_loop(goal, context, options or RunOptions())
        finally:
            self._buffer.clear()
            self._running = False

    async def _run_loop(
        self, goal: str, context: RunContext | None, options: RunOptions,
    ) -> str | None:
        tools = self._tool_registry.collect_tools(options.server_filter)
        max_iterations = (
            options.max_tool_iterations
            if options.max_tool_iterations is not None
            else self._config.max_tool_iterations
        )
        system_prompt = build_system_prompt(
            options.system_prompt or self._config.system_prompt, context,
        )
        history: list[Message] = [
            Message.system(system_prompt),
            Message.user(goal),
        ]

        logger.info(
            "Run starting: %s (tools=%d, max_iterations=%d)",
            goal[:200], len(tools), max_iterations,
        )
        await fire_event(self._event_callback, {
            "event": "start",
            "goal": goal[:500],
            "tools": sorted(tools),
            "max_tool_iterations": max_iterations,
        })

        for iteration in range(1, max_iterations + 1):
            snapshot = self._policy.snapshot()
            result = await self._provider.generate(list(history), tools)
            history.extend(result.messages)
            reason = result.finish_reason
            logger.debug(
                "Iteration %d finished reason=%s tool_calls=%d",
                iteration, reason.value, len(result.tool_calls),
            )

            if reason == FinishReason.TOOL_CALLS and result.tool_calls:
                explanation = result.reasoning or result.text
                if explanation:
                    await fire_event(self._event_callback, {
                        "event": "reasoning",
                        "iteration": iteration,
                        "text": explanation,
                    })
                cancellation = await self._process_tool_calls(
                    result.tool_calls, tools, snapshot, history,
                )
                if cancellation is not None:
                    return cancellation
                continue

            if reason == FinishReason.STOP:
                logger.info("Run finished after %d iteration(s)", iteration)
                await fire_event(self._event_callback, {
                    "event": "final_result",
                    "text": result.text,
                    "iterations": iteration,
                })
                return result.text
            if reason == FinishReason.CONTENT_FILTER:
                logger.warning("Run stopped by content filter at iteration %d", iteration)
                return CONTENT_FILTER_MESSAGE
            if reason == FinishReason.LENGTH:
                logger.warning("Run stopped by output limit at iteration %d", iteration)
                return LENGTH_MESSAGE

            logger.warning(
                "Run ended on unhandled finish reason %s at iteration %d",
                reason.value, iteration,
            )
            return None

        logger.warning("Run hit max_tool_iterations=%d", max_iterations)
        raise MaxToolIterationsError(max_iterations)

    async def _process_tool_calls(
        self,
        tool_calls: list[ToolCallRequest],
        tools: Mapping[str, ToolDefinition],
        snapshot: ApprovalSnapshot,
        history: list[Message],
    ) -> str | None:
        """Handle one turn's tool calls in order.

        Returns the denial message if the user stopped the run.
        """
        for call in tool_calls:
            definition = tools.get(call.name)
            if definition is None:
                content = f"Error: tool '{call.name}' is not available"
                logger.warning("Model requested unknown tool %s", call.name)
                history.append(Message.tool(call.id, content, is_error=True))
                await fire_event(self._event_callback, {
                    "event": "tool_result",
                    "tool_call_id": call.id,
                    "tool_name": call.name,
                    "result": content,
                    "is_error": True,
                })
                continue

            approval_source = "policy"
            if snapshot.requires_approval(call.name):
                outcome = await self._gate.request(
                    call, snapshot.mode, definition.server_name,
                )
                approval_source = outcome.source
                decision = outcome.decision
                if decision.kind == ApprovalDecisionKind.DENY_STOP:
                    return await self._deny(call, outcome)
                if decision.kind == ApprovalDecisionKind.REQUEST_CHANGES:
                    correction = build_correction_message(
                        call.name, call.arguments, decision.feedback,
                    )
                    logger.info("Changes requested for %s", call.name)
                    history.append(Message.tool(call.id, correction, is_error=True))
                    history.append(Message.user(correction))
                    continue
                if decision.whitelist:
                    self._policy.whitelist(
                        call, definition.server_name, definition.tool_name,
                    )

            await self._execute(call, definition, history, approval_source)
        return None

    async def _deny(self, call: ToolCallRequest, outcome: ApprovalOutcome) -> str:
        reason = denial_message(outcome.decision)
        logger.info(
            "Tool %s denied request_id=%s source=%s",
            call.name, outcome.request.request_id[:8], outcome.source,
        )
        await fire_event(self._event_callback, {
            "event": "tool_denied",
            "request_id": outcome.request.request_id,
            "tool_call_id": call.id,
            "tool_name": call.name,
            "reason": reason,
        })
        return reason

    async def _execute(
        self,
        call: ToolCallRequest,
        definition: ToolDefinition,
        history: list[Message],
        approval_source: str = "policy",
    ) -> None:
        arguments = self._buffer.resolve_references(call.arguments)
        await fire_event(self._event_callback, {
            "event": "tool_call",
            "tool_call_id": call.id,
            "tool_name": call.name,
            "server_name": definition.server_name,
            "arguments": call.arguments,
            "approval_source": approval_source,
        })
        logger.info("Executing tool %s (call %s)", call.name, call.id[:8])

        # Exceptions from execute() end the run.
        raw = await definition.execute(arguments)
        if isinstance(raw, ToolResult):
            content, is_error = raw.content, raw.is_error
        else:
            content, is_error = raw, False

        payload: dict[str, Any] = {"result": content}
        output_id: str | None = None
        if not is_error:
            output_id = self._buffer.store(call.name, content)
            payload = {TOOL_OUTPUT_REF_FIELD: output_id, "result": content}

        await fire_event(self._event_callback, {
            "event": "tool_result",
            "tool_call_id": call.id,
            "tool_name": call.name,
            "output_ref": output_id,
            "result": serialize_output(content)[:EVENT_RESULT_PREVIEW_CHARS],
            "is_error": is_error,
        })
        history.append(Message.tool(
            call.id, json.dumps(payload, default=str), is_error=is_error,
        ))
