"""Agent orchestrator: drives one LLM through a bounded tool loop."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

from codeloop.agent.approval import ApprovalGate, ApprovalRequest
from codeloop.agent.conversation import (
    AssistantMessage,
    Message,
    ToolResultMessage,
    UserMessage,
    to_llm_messages,
)
from codeloop.agent.executor import ToolExecutor
from codeloop.agent.loop_detector import LoopDetector
from codeloop.agent.models import AgentEvent, AgentState, EventType, RunResult, StopReason, WorkMode
from codeloop.agent.parser import (
    StreamingToolCall,
    StreamingToolCallScanner,
    parse_native_tool_call,
    parse_xml_tool_calls,
    strip_tool_calls,
)
from codeloop.agent.prompts import build_system_prompt
from codeloop.checkpoints import CheckpointService
from codeloop.config.schema import AgentConfig, LLMConfig
from codeloop.context.compression import CompressionState, ContextCompressor
from codeloop.context.estimator import TokenEstimator, get_estimator
from codeloop.context.summary import Summarizer
from codeloop.providers.base import LLMClient
from codeloop.providers.exceptions import describe_error, is_retryable_error
from codeloop.providers.models import (
    LLMRequest,
    NativeToolCall,
    ReasoningDelta,
    StreamDone,
    StreamError,
    TextDelta,
)
from codeloop.tools.base import ToolExecutionError
from codeloop.tools.models import ToolCall, ToolExecutionContext, ToolStatus
from codeloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

ABORT_REASON = "aborted by user"
MISSING_CREDENTIALS_MESSAGE = "Please configure your API key in settings."
REJECTED_RESULT = "Tool call was rejected by the user."


class RunAborted(Exception):
    """Raised inside a run once ``abort()`` has been called."""


class LLMRequestError(Exception):
    """The LLM round failed and could not be retried."""


@dataclass
class ToolOutcome:
    """Result of processing one tool call."""

    tool_call: ToolCall
    message: ToolResultMessage
    fatal: bool = False  # Non-retryable failure: the run stops


@dataclass
class _StreamProgress:
    text_parts: list[str] = field(default_factory=list)
    native_calls: list[ToolCall] = field(default_factory=list)
    final_content: Optional[str] = None
    received: bool = False
    scanner: Optional[StreamingToolCallScanner] = None


class Agent:
    """Top-level agent state machine.

    One ``send`` drives a run: the user message is recorded, history is
    compressed when over budget, and LLM rounds alternate with tool
    execution until the model stops calling tools, the round limit or the
    loop detector ends the run, or ``abort`` is called.

    At most one run is active per instance. Collaborators (LLM client, tool
    registry, checkpoint service, summarizer) are injected.
    """

    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        config: Optional[AgentConfig] = None,
        *,
        checkpoints: Optional[CheckpointService] = None,
        summarizer: Optional[Summarizer] = None,
        event_callback: Optional[Callable[[AgentEvent], None]] = None,
        estimator: Optional[TokenEstimator] = None,
    ):
        """Initialize the agent.

        Args:
            llm: Streaming LLM client
            registry: Tools available to the model
            config: Agent configuration
            checkpoints: Service asked for a checkpoint before mutating tools
            summarizer: Summarizer used by context compression
            event_callback: Receives AgentEvent updates; failures are logged
            estimator: Token estimator (defaults to the configured one)
        """
        self.llm = llm
        self.registry = registry
        self.config = config or AgentConfig()
        self.event_callback = event_callback

        self.gate = ApprovalGate(self.config.auto_approve)
        self.loop_detector = LoopDetector.from_config(self.config.loop_detection)
        self.executor = ToolExecutor(registry, checkpoints=checkpoints)
        self.compressor = ContextCompressor(
            threshold=self.config.context.compress_threshold,
            keep_recent_turns=self.config.context.keep_recent_turns,
            summary_max_tokens=self.config.context.summary_max_tokens,
            estimator=estimator or get_estimator(self.config.context.estimator),
            summarizer=summarizer,
        )

        self.messages: list[Message] = []
        self.state = AgentState.IDLE
        self.compression_state: Optional[CompressionState] = None

        self._running = False
        self._cancel: Optional[asyncio.Event] = None
        self._current: Optional[AssistantMessage] = None
        self._run_tool_calls: list[ToolCall] = []
        self._tool_loops = 0

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_approval(self) -> Optional[ToolCall]:
        """The tool call waiting for a user decision, if any."""
        request = self.gate.pending
        return request.tool_call if request is not None and not request.future.done() else None

    async def send(
        self,
        message: str,
        llm_config: LLMConfig,
        workspace: Optional[Path] = None,
        system_prompt: str = "",
        mode: WorkMode = WorkMode.AGENT,
    ) -> RunResult:
        """Run the agent on a user message.

        Args:
            message: User instruction
            llm_config: Model and credentials
            workspace: Root directory tools operate in
            system_prompt: Base system prompt (a default is used when empty)
            mode: Work mode; chat mode offers no tools

        Returns:
            RunResult describing how the run ended. Errors are reported in the
            result and as events, never raised.
        """
        if self._running:
            logger.warning("send() called while a run is in progress, ignoring")
            self._emit(EventType.WARNING, text="A run is already in progress.")
            return RunResult(stop_reason=StopReason.BUSY, error="A run is already in progress.")

        if not llm_config.has_credentials():
            self._emit(EventType.ERROR, text=MISSING_CREDENTIALS_MESSAGE)
            return RunResult(stop_reason=StopReason.ERROR, error=MISSING_CREDENTIALS_MESSAGE)

        self._running = True
        self._cancel = asyncio.Event()
        self._run_tool_calls = []
        self._tool_loops = 0
        self.loop_detector.reset()
        self.state = AgentState.STREAMING

        logger.info(f"Starting run ({mode.value} mode, model {llm_config.model_id})")
        self._emit(EventType.RUN_START, text=message, data={"mode": mode.value})

        result = RunResult(stop_reason=StopReason.ERROR, error="Run did not complete")
        try:
            self.messages.append(UserMessage(content=message))
            result = await self._run_loop(llm_config, workspace, system_prompt, mode)

        except RunAborted:
            logger.info("Run aborted by user")
            result = RunResult(stop_reason=StopReason.ABORTED, error="Run aborted by user.")

        except LLMRequestError as e:
            logger.error(f"LLM request failed: {e}")
            self._emit(EventType.ERROR, text=str(e))
            result = RunResult(stop_reason=StopReason.ERROR, error=str(e))

        except Exception as e:
            logger.error(f"Agent run failed: {e}", exc_info=True)
            error = f"Agent run failed: {e or type(e).__name__}"
            self._emit(EventType.ERROR, text=error)
            result = RunResult(stop_reason=StopReason.ERROR, error=error)

        finally:
            result.tool_calls = list(self._run_tool_calls)
            result.tool_loops = self._tool_loops
            self._finalize(result)

        return result

    def abort(self) -> None:
        """Cancel the current run.

        Every tool call that has not finished is marked as an error, a
        pending approval is resolved as rejected, and the in-progress
        assistant message stops streaming.
        """
        if not self._running or self._cancel is None:
            return

        logger.info("Abort requested")
        self._cancel.set()

        for tc in self._open_tool_calls():
            if tc.status in (ToolStatus.PENDING, ToolStatus.AWAITING, ToolStatus.RUNNING):
                tc.status = ToolStatus.ERROR
                tc.error = ABORT_REASON

        self.gate.cancel()

        if self._current is not None:
            self._current.is_streaming = False

    def approve(self) -> bool:
        """Approve the pending tool call. Returns False if none was pending."""
        return self.gate.approve()

    def reject(self) -> bool:
        """Reject the pending tool call. Returns False if none was pending."""
        return self.gate.reject()

    def clear_history(self) -> None:
        """Drop the conversation (ignored while a run is active)."""
        if self._running:
            logger.warning("Cannot clear history while a run is in progress")
            return
        self.messages = []
        self.compression_state = None

    # =========================================================================
    # Run loop
    # =========================================================================

    async def _run_loop(
        self,
        llm_config: LLMConfig,
        workspace: Optional[Path],
        system_prompt: str,
        mode: WorkMode,
    ) -> RunResult:
        inline = llm_config.tool_format == "inline"
        tool_definitions = self.registry.get_tool_definitions() if mode.uses_tools else []
        system = build_system_prompt(
            system_prompt, mode, inline_tools=tool_definitions if inline else None
        )
        context = ToolExecutionContext(
            workspace_path=Path(workspace).resolve() if workspace else None,
            ignored_directories=list(self.config.ignored_directories),
        )
        max_loops = self.config.max_tool_loops

        while True:
            self._check_cancel()
            await self._compress_context()

            request = LLMRequest(
                model=llm_config.model_id,
                messages=to_llm_messages(self.messages, system, inline=inline),
                tools=tool_definitions if tool_definitions and not inline else None,
                temperature=llm_config.temperature,
                max_tokens=llm_config.max_tokens,
                api_key=llm_config.api_key,
                base_url=llm_config.base_url,
            )

            assistant = AssistantMessage()
            self._current = assistant
            self.messages.append(assistant)
            self.state = AgentState.STREAMING

            await self._stream_round(assistant, request, inline=inline and bool(tool_definitions))
            assistant.is_streaming = False
            self._check_cancel()

            if not assistant.tool_calls:
                logger.info(f"Run completed after {self._tool_loops} tool round(s)")
                return RunResult(stop_reason=StopReason.COMPLETED, content=assistant.content)

            self._run_tool_calls.extend(assistant.tool_calls)

            if self._tool_loops >= max_loops:
                reason = f"Maximum tool call limit reached ({max_loops} rounds)."
                logger.warning(reason)
                self._fail_unexecuted(assistant.tool_calls, reason)
                self._emit(EventType.WARNING, text=reason)
                return RunResult(
                    stop_reason=StopReason.MAX_TOOL_LOOPS, content=assistant.content, error=reason
                )

            self._tool_loops += 1
            loop_check = self.loop_detector.check(assistant.tool_calls)
            if loop_check.is_loop:
                reason = loop_check.reason or "Detected a tool-call loop."
                self._fail_unexecuted(assistant.tool_calls, f"{reason} Tool loop stopped.")
                self._emit(EventType.LOOP_DETECTED, text=reason)
                return RunResult(
                    stop_reason=StopReason.LOOP_DETECTED, content=assistant.content, error=reason
                )

            context.assistant_id = assistant.id
            fatal = await self._execute_tool_calls(assistant.tool_calls, context)
            if fatal is not None:
                self._emit(EventType.ERROR, text=fatal)
                return RunResult(
                    stop_reason=StopReason.TOOL_FAILED, content=assistant.content, error=fatal
                )

    async def _compress_context(self) -> None:
        compressed, state = await self._race_cancel(self.compressor.compress(self.messages))
        self.compression_state = state
        if state.compressed:
            self.messages = compressed
            self._emit(
                EventType.CONTEXT_COMPRESSED,
                text=f"Compressed older conversation ({state.level.name.lower()})",
                data={
                    "level": state.level.name.lower(),
                    "estimated_tokens": state.estimated_tokens,
                    "tokens_after": state.tokens_after,
                },
            )

    # =========================================================================
    # LLM streaming
    # =========================================================================

    async def _stream_round(self, assistant: AssistantMessage, request: LLMRequest, inline: bool) -> None:
        """Stream one LLM round into ``assistant``, retrying transient failures.

        A failed attempt is retried only while nothing has been received yet.

        Raises:
            LLMRequestError: If the round failed for good
        """
        retry = self.config.retry
        attempt = 0

        while True:
            assistant.content = ""
            assistant.reasoning = ""
            assistant.tool_calls = []

            error, received = await self._stream_once(assistant, request, inline)
            if error is None:
                return

            attempt += 1
            if not error.retryable or received or attempt > retry.max_retries:
                raise LLMRequestError(error.message)

            delay = retry.delay_for(attempt)
            logger.warning(f"LLM request failed ({error.message}), retry {attempt}/{retry.max_retries} in {delay:.1f}s")
            self._emit(
                EventType.WARNING,
                text=f"{error.message}. Retrying in {delay:.1f}s ({attempt}/{retry.max_retries})",
            )
            await self._race_cancel(asyncio.sleep(delay))

    async def _stream_once(
        self, assistant: AssistantMessage, request: LLMRequest, inline: bool
    ) -> tuple[Optional[StreamError], bool]:
        progress = _StreamProgress(scanner=StreamingToolCallScanner() if inline else None)
        timeout = self.config.request_timeout

        try:
            error = await self._race_cancel(
                asyncio.wait_for(self._consume_stream(assistant, request, progress), timeout=timeout)
            )
        except asyncio.TimeoutError:
            error = StreamError(f"LLM request timed out after {timeout:g}s", retryable=True)

        if error is None:
            self._apply_stream_result(assistant, progress, inline)
        return error, progress.received

    async def _consume_stream(
        self, assistant: AssistantMessage, request: LLMRequest, progress: _StreamProgress
    ) -> Optional[StreamError]:
        assert self._cancel is not None
        try:
            async for event in self.llm.stream(request, self._cancel):
                if self._cancel.is_set():
                    raise RunAborted()

                if isinstance(event, TextDelta):
                    progress.received = True
                    progress.text_parts.append(event.text)
                    self._emit(EventType.STREAM_TEXT, text=event.text)
                    if progress.scanner is not None:
                        self._emit_streaming_call(progress.scanner.feed(event.text))

                elif isinstance(event, ReasoningDelta):
                    progress.received = True
                    assistant.reasoning += event.text
                    self._emit(EventType.STREAM_REASONING, text=event.text)

                elif isinstance(event, NativeToolCall):
                    progress.received = True
                    progress.native_calls.append(
                        parse_native_tool_call(event.id, event.name, event.arguments)
                    )

                elif isinstance(event, StreamDone):
                    progress.final_content = event.content or "".join(progress.text_parts)
                    return None

                elif isinstance(event, StreamError):
                    return event

        except (RunAborted, asyncio.CancelledError):
            raise
        except Exception as e:
            logger.warning(f"LLM stream raised: {e}")
            return StreamError(describe_error(e), retryable=is_retryable_error(e))

        # Stream ended without a terminal event; keep what arrived
        progress.final_content = "".join(progress.text_parts)
        return None

    def _apply_stream_result(
        self, assistant: AssistantMessage, progress: _StreamProgress, inline: bool
    ) -> None:
        text = progress.final_content or ""

        if not inline:
            assistant.content = text
            assistant.tool_calls = progress.native_calls
            return

        calls = parse_xml_tool_calls(text)
        streamed = progress.scanner.completed if progress.scanner else []
        # Keep the ids the UI already saw while the calls were streaming
        for call, seen in zip(calls, streamed):
            if call.name == seen.name:
                call.id = seen.id
        assistant.content = strip_tool_calls(text)
        assistant.tool_calls = calls + progress.native_calls

    def _emit_streaming_call(self, call: Optional[StreamingToolCall]) -> None:
        if call is None:
            return
        self._emit(
            EventType.TOOL_STREAMING,
            tool_call=call.to_tool_call(),
            data={"is_streaming": call.is_streaming},
        )

    # =========================================================================
    # Tool execution
    # =========================================================================

    def _can_run_in_parallel(self, tool_call: ToolCall) -> bool:
        if not self.registry.is_read_only(tool_call.name):
            return False
        return not self.gate.needs_approval(self.registry.get_approval_type(tool_call.name))

    async def _execute_tool_calls(
        self, tool_calls: list[ToolCall], context: ToolExecutionContext
    ) -> Optional[str]:
        """Execute one round of tool calls.

        Consecutive read-only calls that need no approval run concurrently;
        everything else runs alone, in order. Results are appended in the
        order the calls were requested.

        Returns:
            Error message of a non-retryable failure that ends the run, or None
        """
        batch: list[ToolCall] = []

        async def flush() -> Optional[str]:
            if not batch:
                return None
            outcomes = await self._run_parallel(list(batch), context)
            batch.clear()
            return self._record_outcomes(outcomes)

        for index, tc in enumerate(tool_calls):
            if self._can_run_in_parallel(tc):
                batch.append(tc)
                continue

            fatal = await flush()
            if fatal is None:
                fatal = self._record_outcomes([await self._process_tool_call(tc, context)])
            if fatal is not None:
                self._fail_unexecuted(tool_calls[index + 1 :], "Skipped: the run stopped after a tool failure.")
                return fatal

        return await flush()

    async def _run_parallel(
        self, tool_calls: list[ToolCall], context: ToolExecutionContext
    ) -> list[ToolOutcome]:
        results = await asyncio.gather(
            *(self._process_tool_call(tc, context) for tc in tool_calls), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)  # type: ignore[arg-type]

    def _record_outcomes(self, outcomes: list[ToolOutcome]) -> Optional[str]:
        fatal: Optional[str] = None
        for outcome in outcomes:
            self.messages.append(outcome.message)
            if outcome.fatal and fatal is None:
                fatal = f"{outcome.tool_call.name} failed: {outcome.tool_call.error}"
        return fatal

    async def _process_tool_call(self, tool_call: ToolCall, context: ToolExecutionContext) -> ToolOutcome:
        """Validate, gate and execute one tool call."""
        self._check_cancel()

        validation = self.registry.validate(tool_call.name, tool_call.arguments)
        if not validation.success:
            tool_call.status = ToolStatus.ERROR
            tool_call.error = validation.error
            self._emit(EventType.TOOL_ERROR, tool_call=tool_call, text=validation.error)
            return ToolOutcome(tool_call, self._result_message(tool_call, f"Error: {validation.error}"))

        approval_type = self.registry.get_approval_type(tool_call.name)
        if self.gate.needs_approval(approval_type):
            tool_call.status = ToolStatus.AWAITING
            self.state = AgentState.TOOL_PENDING

            def notify(request: ApprovalRequest) -> None:
                self._emit(
                    EventType.TOOL_APPROVAL_NEEDED,
                    tool_call=request.tool_call,
                    data={"approval_type": request.approval_type.value},
                )

            approved = await self.gate.request(tool_call, approval_type, notify=notify)
            if self._cancel is not None and self._cancel.is_set():
                # abort() has already marked the call
                raise RunAborted()

            if not approved:
                tool_call.status = ToolStatus.REJECTED
                self._emit(EventType.TOOL_REJECTED, tool_call=tool_call)
                return ToolOutcome(tool_call, self._result_message(tool_call, REJECTED_RESULT))

            self._emit(EventType.TOOL_APPROVED, tool_call=tool_call)

        tool_call.status = ToolStatus.RUNNING
        self.state = AgentState.TOOL_RUNNING
        self._emit(EventType.TOOL_START, tool_call=tool_call)

        try:
            result = await self._race_cancel(self.executor.execute(tool_call, validation.data, context))
        except ToolExecutionError as e:
            tool_call.status = ToolStatus.ERROR
            tool_call.error = str(e)
            self._emit(EventType.TOOL_ERROR, tool_call=tool_call, text=str(e))
            if not e.retryable:
                logger.warning(f"Non-retryable failure in {tool_call.name}: {e}")
            return ToolOutcome(
                tool_call, self._result_message(tool_call, f"Error: {e}"), fatal=not e.retryable
            )

        tool_call.status = ToolStatus.SUCCESS
        tool_call.result = result
        self._emit(EventType.TOOL_COMPLETE, tool_call=tool_call)
        return ToolOutcome(tool_call, self._result_message(tool_call, self._truncate(result)))

    def _result_message(self, tool_call: ToolCall, content: str) -> ToolResultMessage:
        return ToolResultMessage(
            tool_call_id=tool_call.id,
            name=tool_call.name,
            content=content,
            status=tool_call.status,
        )

    def _truncate(self, text: str) -> str:
        limit = self.config.context.max_tool_result_chars
        if len(text) <= limit:
            return text
        return text[:limit] + f"\n\n... [truncated {len(text) - limit} characters]"

    def _fail_unexecuted(self, tool_calls: list[ToolCall], reason: str) -> None:
        """Mark calls that will not run as errors and record their results."""
        for tc in tool_calls:
            if tc.status.is_terminal:
                continue
            tc.status = ToolStatus.ERROR
            tc.error = reason
            self.messages.append(self._result_message(tc, f"Error: {reason}"))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _open_tool_calls(self) -> list[ToolCall]:
        calls = list(self._run_tool_calls)
        if self._current is not None:
            seen = {id(tc) for tc in calls}
            calls.extend(tc for tc in self._current.tool_calls if id(tc) not in seen)
        return calls

    def _check_cancel(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise RunAborted()

    async def _race_cancel(self, awaitable: Awaitable[T]) -> T:
        """Await something, giving up as soon as the run is aborted.

        Raises:
            RunAborted: If abort() was called first
        """
        assert self._cancel is not None
        task = asyncio.ensure_future(awaitable)
        cancel_wait = asyncio.ensure_future(self._cancel.wait())
        try:
            done, _ = await asyncio.wait({task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
            if task in done:
                return task.result()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            raise RunAborted()
        finally:
            cancel_wait.cancel()
            if not task.done():
                task.cancel()

    def _finalize(self, result: RunResult) -> None:
        """Single cleanup step, run once at the end of every send()."""
        if self._current is not None:
            self._current.is_streaming = False
        self._current = None
        self.gate.cancel()
        self._running = False
        self._cancel = None
        self.state = AgentState.ERROR if result.stop_reason == StopReason.ERROR else AgentState.IDLE

        logger.info(f"Run finished: {result.stop_reason.value}")
        self._emit(
            EventType.RUN_COMPLETE,
            text=result.content or result.error,
            data={"stop_reason": result.stop_reason.value, "tool_loops": result.tool_loops},
        )

    def _emit(
        self,
        event_type: EventType,
        tool_call: Optional[ToolCall] = None,
        text: Optional[str] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        """Emit an event if a callback is configured."""
        if not self.event_callback:
            return
        event = AgentEvent(
            event_type=event_type,
            tool_call=tool_call.model_copy(deep=True) if tool_call else None,
            text=text,
            data=data,
        )
        try:
            self.event_callback(event)
        except Exception as e:
            logger.warning(f"Event callback error: {e}")
