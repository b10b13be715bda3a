"""The run loop: turns, tool batches, transfers and guardrails as a state machine."""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from pydantic import ValidationError

from baton.config import Config
from baton.config_provider import ConfigProvider
from baton.domain.agent import Agent, AgentRegistry, InputFilter
from baton.domain.context import RunContext
from baton.domain.events import RunEvent
from baton.domain.exceptions import (
    GuardrailTripwireError,
    MaxTurnsExceededError,
    RaceError,
    RunError,
    RunTimeoutError,
)
from baton.domain.guardrail import GuardrailKind
from baton.domain.hooks import RunHooks
from baton.domain.messages import Message, Role, ToolCallResult
from baton.domain.records import RunStatus, StepRecord
from baton.domain.result import RunResult
from baton.domain.run_state import ApprovalDecision, ApprovalStatus, RunState, TurnPhase
from baton.engine.guardrail_enforcer import GuardrailEnforcer
from baton.engine.lifecycle import EventSink, LifecycleEmitter
from baton.engine.tool_dispatcher import ApprovalHandler, ToolDispatcher, coerce_decision
from baton.engine.transfer_resolver import TransferResolver
from baton.engine.turn_driver import TurnDriver, TurnKind, TurnOutcome
from baton.infra.session import Session
from baton.llm.model_provider import ModelProvider

logger = logging.getLogger(__name__)

RunInput = Union[str, Sequence[Message]]
Decisions = Mapping[str, Union[bool, ApprovalDecision, Mapping[str, Any]]]


@dataclass
class RunOptions:
    """
    Per-run settings; unset values fall back to the runner's Config.

    Args:
        context: Caller object shared with tools, guardrails and approval
            predicates. Must be JSON-serializable for ``RunState.to_json``.
        session: History store read before and written after the run.
        max_turns: Model invocation limit.
        approval_handler: ``(tool_name, args, context)`` callback deciding
            gated calls inline instead of suspending.
        timeout: Wall-clock limit in seconds for this run call.
        guardrail_max_retries: Output guardrail retries before tripping.
        transfer_input_filter: History filter for transfers whose target
            does not set its own.
        toon_encode_results: Render large structured tool results as TOON.
        model: Model for agents that do not name one.
        hooks: Lifecycle callbacks for every agent in the run.
    """

    context: Any = None
    session: Optional[Session] = None
    max_turns: Optional[int] = None
    approval_handler: Optional[ApprovalHandler] = None
    timeout: Optional[float] = None
    guardrail_max_retries: Optional[int] = None
    transfer_input_filter: Optional[InputFilter] = None
    toon_encode_results: Optional[bool] = None
    model: Optional[str] = None
    hooks: Optional[RunHooks] = None


class Runner:
    """
    Drives agents to a final answer.

    Args:
        provider: Model provider; a PydanticAIProvider built from the config
            when omitted.
        config: Runtime configuration; loaded through ConfigProvider when
            omitted.
    """

    def __init__(
        self,
        provider: Optional[ModelProvider] = None,
        config: Optional[Config] = None,
    ) -> None:
        self._config = config or ConfigProvider().load()
        if provider is None:
            from baton.llm.pydantic_ai_provider import PydanticAIProvider

            provider = PydanticAIProvider(self._config)
        self._provider = provider
        self._turn_driver = TurnDriver(provider)
        self._dispatcher = ToolDispatcher()
        self._transfers = TransferResolver()
        self._guardrails = GuardrailEnforcer()

    @property
    def config(self) -> Config:
        return self._config

    async def run(
        self, agent: Agent, input: RunInput, options: Optional[RunOptions] = None
    ) -> RunResult:
        """
        Runs an agent graph from a starting agent.

        Args:
            agent: Starting agent.
            input: User text or a list of messages.
            options: Per-run settings.

        Returns:
            A completed result, or a suspended one carrying a RunState.

        Raises:
            RunError: On fatal failures; ``partial`` holds what was produced.
        """
        return await self._start(agent, input, options or RunOptions())

    async def resume(
        self,
        state: RunState,
        decisions: Optional[Decisions] = None,
        options: Optional[RunOptions] = None,
    ) -> RunResult:
        """
        Continues a suspended run with approval decisions applied.

        The state is advanced in place.

        Args:
            state: Suspended, bound state (see ``RunState.from_json``).
            decisions: Call id to ``bool`` or ApprovalDecision. Calls left
                undecided suspend the run again.
            options: Per-run settings; ``context`` replaces the stored one
                when given.

        Raises:
            ValueError: When the state is not awaiting approval.
        """
        return await self._resume(state, decisions, options or RunOptions())

    async def run_stream(
        self, agent: Agent, input: RunInput, options: Optional[RunOptions] = None
    ) -> AsyncIterator[RunEvent]:
        """
        Runs like ``run`` and yields progress events as they happen.

        The last event is ``RUN_END`` carrying the RunResult. Fatal errors
        are raised from the iterator after the events produced so far.
        """
        options = options or RunOptions()
        async for event in self._stream(lambda sink: self._start(agent, input, options, sink)):
            yield event

    async def resume_stream(
        self,
        state: RunState,
        decisions: Optional[Decisions] = None,
        options: Optional[RunOptions] = None,
    ) -> AsyncIterator[RunEvent]:
        """Resumes like ``resume`` and yields progress events as they happen."""

        options = options or RunOptions()
        async for event in self._stream(
            lambda sink: self._resume(state, decisions, options, sink)
        ):
            yield event

    async def race(
        self,
        agents: Sequence[Agent],
        input: RunInput,
        options: Optional[RunOptions] = None,
        timeout: Optional[float] = None,
    ) -> RunResult:
        """
        Runs several agents on the same input concurrently.

        The first run to return a result wins, whether completed or suspended
        for approval; the others are cancelled. ``start_agent`` of the result
        names the winner. The session, if any, is read once and only the
        winner's transcript is appended to it.

        Args:
            agents: Competing starting agents, in priority order for runs
                finishing together.
            input: User text or a list of messages.
            options: Per-run settings shared by every racer.
            timeout: Wall-clock limit in seconds for the whole race.

        Raises:
            ValueError: When no agents are given.
            RunTimeoutError: When no racer finishes within ``timeout``.
            RaceError: When every racer fails.
        """
        if not agents:
            raise ValueError("A race needs at least one agent")
        options = options or RunOptions()
        history = list(await options.session.get_history()) if options.session else []
        racer_options = dataclasses.replace(options, session=None)
        tasks = [
            asyncio.ensure_future(self._start(agent, input, racer_options, history=history))
            for agent in agents
        ]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout else None
        pending = set(tasks)
        errors: List[BaseException] = []
        winner: Optional[RunResult] = None
        try:
            while pending and winner is None:
                remaining = None if deadline is None else max(0.0, deadline - loop.time())
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    raise RunTimeoutError(timeout)
                for task in sorted(done, key=tasks.index):
                    if task.exception() is None:
                        winner = task.result()
                        break
                    errors.append(task.exception())
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if winner is None:
            raise RaceError(errors)
        if options.session is not None and winner.status == RunStatus.COMPLETED:
            await options.session.append(winner.transcript)
        logger.info(
            "Race won",
            extra={
                "agent": winner.start_agent,
                "participants": [agent.name for agent in agents],
                "failed": len(errors),
            },
        )
        return winner

    def run_sync(
        self, agent: Agent, input: RunInput, options: Optional[RunOptions] = None
    ) -> RunResult:
        return asyncio.run(self.run(agent, input, options))

    def resume_sync(
        self,
        state: RunState,
        decisions: Optional[Decisions] = None,
        options: Optional[RunOptions] = None,
    ) -> RunResult:
        return asyncio.run(self.resume(state, decisions, options))

    async def _start(
        self,
        agent: Agent,
        input: RunInput,
        options: RunOptions,
        sink: Optional[EventSink] = None,
        history: Optional[List[Message]] = None,
    ) -> RunResult:
        registry = AgentRegistry.from_root(agent)
        if history is None:
            history = list(await options.session.get_history()) if options.session else []
        if isinstance(input, str):
            new_messages = [Message.user(input)]
            original_input: Union[str, List[Message]] = input
        else:
            new_messages = list(input)
            original_input = list(input)

        state = RunState(
            start_agent=agent.name,
            current_agent=agent.name,
            original_input=original_input,
            messages=history + new_messages,
            transcript=list(new_messages),
            context=options.context,
            max_turns=options.max_turns or self._config.max_turns,
        ).bind(registry)
        logger.info(
            "Run started",
            extra={"run_id": state.run_id, "agent": agent.name, "max_turns": state.max_turns},
        )
        emitter = LifecycleEmitter(state, options.hooks, sink)
        return await self._drive(state, options, emitter, check_input=True)

    async def _resume(
        self,
        state: RunState,
        decisions: Optional[Decisions],
        options: RunOptions,
        sink: Optional[EventSink] = None,
    ) -> RunResult:
        if state.status != RunStatus.AWAITING_APPROVAL:
            raise ValueError(f"Cannot resume a run in status '{state.status.value}'")
        pending_ids = {item.call_id for item in state.pending_approvals}
        for call_id, value in (decisions or {}).items():
            if call_id not in pending_ids:
                logger.warning(
                    "Ignoring decision for a call that is not pending",
                    extra={"run_id": state.run_id, "call_id": call_id},
                )
                continue
            state.approvals[call_id] = coerce_decision(value)
        for item in state.pending_approvals:
            decision = state.approvals.get(item.call_id)
            if decision is not None:
                item.status = ApprovalStatus.APPROVED if decision.approved else ApprovalStatus.REJECTED
        if options.context is not None:
            state.context = options.context
        state.status = RunStatus.RUNNING
        logger.info("Run resumed", extra={"run_id": state.run_id, "step": state.step})
        emitter = LifecycleEmitter(state, options.hooks, sink)
        return await self._drive(state, options, emitter, check_input=False)

    @staticmethod
    async def _stream(
        start: Callable[[EventSink], Awaitable[RunResult]]
    ) -> AsyncIterator[RunEvent]:
        queue: "asyncio.Queue[Optional[RunEvent]]" = asyncio.Queue()
        task = asyncio.ensure_future(start(queue.put))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            # Re-raises the run's failure after its events were delivered.
            task.result()
        finally:
            if not task.done():
                task.cancel()

    async def _drive(
        self,
        state: RunState,
        options: RunOptions,
        emitter: LifecycleEmitter,
        check_input: bool,
    ) -> RunResult:
        timeout = options.timeout or self._config.run_timeout_seconds
        try:
            if timeout:
                try:
                    result = await asyncio.wait_for(
                        self._advance(state, options, emitter, check_input), timeout
                    )
                except asyncio.TimeoutError as exc:
                    raise RunTimeoutError(timeout) from exc
            else:
                result = await self._advance(state, options, emitter, check_input)
        except RunError as error:
            self._mark_failed(state, error)
            raise
        await emitter.run_end(result)
        return result

    def _mark_failed(self, state: RunState, error: RunError) -> None:
        state.status = RunStatus.FAILED
        error.partial = RunResult.from_state(state, error=str(error))
        logger.warning(
            "Run failed",
            extra={
                "run_id": state.run_id,
                "agent": state.current_agent,
                "step": state.step,
                "error_class": type(error).__name__,
            },
        )

    async def _advance(
        self,
        state: RunState,
        options: RunOptions,
        emitter: LifecycleEmitter,
        check_input: bool,
    ) -> RunResult:
        if check_input:
            await self._guardrails.enforce_input(
                state.agent.guardrails_of(GuardrailKind.INPUT),
                self._input_text(state.original_input),
                self._context(state),
            )
            await emitter.agent_start(self._context(state), state.agent)

        while True:
            if state.phase == TurnPhase.DISPATCH:
                if await self._dispatch(state, options, emitter):
                    logger.info(
                        "Run suspended for approval",
                        extra={
                            "run_id": state.run_id,
                            "agent": state.current_agent,
                            "pending": [item.call_id for item in state.pending_approvals],
                        },
                    )
                    await emitter.approval_required(state.agent, state.pending_approvals)
                    return RunResult.from_state(state)
                continue

            if state.step >= state.max_turns:
                raise MaxTurnsExceededError(state.max_turns)
            state.step += 1
            agent = state.agent
            outcome = await self._turn_driver.take_turn(
                agent,
                state.messages,
                self._context(state),
                options.model or self._config.model_name,
                metadata={"run_id": state.run_id, "step": state.step},
            )
            response = outcome.response
            state.usage.add(
                agent.name, response.input_tokens, response.output_tokens, response.total_tokens
            )
            await emitter.model_response(agent, outcome.assistant_message())

            if outcome.kind == TurnKind.FINAL_ANSWER:
                result = await self._finish(state, agent, outcome, options, emitter)
                if result is not None:
                    return result
                continue

            state.usage.record_tool_calls(agent.name, len(outcome.tool_calls))
            state.append_message(outcome.assistant_message())
            state.steps.append(
                StepRecord(
                    step=state.step,
                    agent=agent.name,
                    text=outcome.text,
                    tool_calls=outcome.tool_calls,
                )
            )
            state.pending_calls = outcome.regular_calls
            state.pending_transfers = outcome.transfer_calls
            state.phase = TurnPhase.DISPATCH

    async def _dispatch(
        self, state: RunState, options: RunOptions, emitter: LifecycleEmitter
    ) -> bool:
        """Run the pending batch; return True when it suspended."""

        agent = state.agent
        decision = self._transfers.resolve(agent, state.pending_transfers, state.step)
        outcome = await self._dispatcher.dispatch(
            agent,
            state.pending_calls,
            self._context(state),
            state.approvals,
            options.approval_handler,
            emitter,
        )
        state.approvals.update(outcome.decisions)
        if outcome.suspended:
            state.pending_approvals = outcome.pending
            state.status = RunStatus.AWAITING_APPROVAL
            return True

        results = list(outcome.results)
        if decision is not None:
            results.extend(decision.results)
        step_record = state.steps[-1]
        ordered = self._in_request_order(step_record, results)
        encode_toon = (
            options.toon_encode_results
            if options.toon_encode_results is not None
            else self._config.toon_encode_results
        )
        for result in ordered:
            state.append_message(result.to_message(encode_toon, self._config.toon_min_chars))
        step_record.tool_results = ordered

        batch_ids = {call.call_id for call in step_record.tool_calls}
        state.approvals = {
            call_id: value for call_id, value in state.approvals.items() if call_id not in batch_ids
        }
        state.pending_calls = []
        state.pending_transfers = []
        state.pending_approvals = []
        state.phase = TurnPhase.MODEL

        if decision is not None:
            target = decision.target
            if target.name not in state.registry:
                state.registry.register(target)
            visited = {state.start_agent} | {record.target for record in state.transfers}
            if target.name in visited:
                logger.warning(
                    "Transfer revisits an agent",
                    extra={"run_id": state.run_id, "agent": target.name, "step": state.step},
                )
            state.messages = self._transfers.filter_history(
                decision.transfer, state.messages, options.transfer_input_filter
            )
            state.transfers.append(decision.record)
            step_record.transfer = decision.record
            state.current_agent = target.name
            logger.info(
                "Transferred control",
                extra={
                    "run_id": state.run_id,
                    "source": decision.record.source,
                    "target": decision.record.target,
                    "step": state.step,
                },
            )
            await emitter.transfer(self._context(state), agent, target, decision.record)
            await emitter.agent_start(self._context(state), target)
        return False

    async def _finish(
        self,
        state: RunState,
        agent: Agent,
        outcome: TurnOutcome,
        options: RunOptions,
        emitter: LifecycleEmitter,
    ) -> Optional[RunResult]:
        """Check a final answer; return the result, or None to ask again."""

        text = outcome.text or ""
        state.append_message(Message.assistant(text))
        step_record = StepRecord(step=state.step, agent=agent.name, text=text)
        state.steps.append(step_record)

        check = await self._guardrails.enforce_output(
            agent.guardrails_of(GuardrailKind.OUTPUT), text, self._context(state)
        )
        if not check.passed:
            max_retries = (
                options.guardrail_max_retries
                if options.guardrail_max_retries is not None
                else self._config.guardrail_max_retries
            )
            if state.guardrail_retries >= max_retries:
                failure = check.failures[0]
                raise GuardrailTripwireError(
                    failure.guardrail.name, failure.guardrail.kind.value, failure.message
                )
            state.guardrail_retries += 1
            feedback = check.feedback()
            step_record.guardrail_feedback = feedback
            state.append_message(Message.user(feedback))
            await emitter.guardrail_retry(agent, feedback)
            return None

        final_output = self._final_output(agent, text)
        await emitter.agent_end(self._context(state), agent, final_output)
        state.status = RunStatus.COMPLETED
        if options.session is not None:
            await options.session.append(state.transcript)
        result = RunResult.from_state(state, final_output=final_output)
        logger.info(
            "Run completed",
            extra={
                "run_id": state.run_id,
                "agent": agent.name,
                "steps": state.step,
                "total_tokens": state.usage.total_tokens,
            },
        )
        return result

    @staticmethod
    def _in_request_order(step: StepRecord, results: List[ToolCallResult]) -> List[ToolCallResult]:
        by_id: Dict[str, ToolCallResult] = {result.call_id: result for result in results}
        return [by_id[call.call_id] for call in step.tool_calls if call.call_id in by_id]

    @staticmethod
    def _final_output(agent: Agent, text: str) -> Any:
        if agent.output_type is None:
            return text
        try:
            return agent.output_type.model_validate_json(text)
        except ValidationError:
            logger.warning(
                "Final answer does not match the output type; returning text",
                extra={"agent": agent.name, "output_type": agent.output_type.__name__},
            )
            return text

    @staticmethod
    def _input_text(original_input: Union[str, List[Message]]) -> str:
        if isinstance(original_input, str):
            return original_input
        return "\n".join(message.text for message in original_input if message.role == Role.USER)

    @staticmethod
    def _context(state: RunState) -> RunContext:
        return RunContext(
            context=state.context,
            agent=state.current_agent,
            messages=tuple(state.messages),
            usage=state.usage,
            step=state.step,
        )


async def run(
    agent: Agent,
    input: RunInput,
    options: Optional[RunOptions] = None,
    runner: Optional[Runner] = None,
) -> RunResult:
    """Run with the given runner, or a default one built from config."""

    return await (runner or Runner()).run(agent, input, options)


async def resume(
    state: RunState,
    decisions: Optional[Decisions] = None,
    options: Optional[RunOptions] = None,
    runner: Optional[Runner] = None,
) -> RunResult:
    return await (runner or Runner()).resume(state, decisions, options)


async def run_stream(
    agent: Agent,
    input: RunInput,
    options: Optional[RunOptions] = None,
    runner: Optional[Runner] = None,
) -> AsyncIterator[RunEvent]:
    """Stream run events with the given runner, or a default one."""

    async for event in (runner or Runner()).run_stream(agent, input, options):
        yield event


async def resume_stream(
    state: RunState,
    decisions: Optional[Decisions] = None,
    options: Optional[RunOptions] = None,
    runner: Optional[Runner] = None,
) -> AsyncIterator[RunEvent]:
    async for event in (runner or Runner()).resume_stream(state, decisions, options):
        yield event


async def race_agents(
    agents: Sequence[Agent],
    input: RunInput,
    options: Optional[RunOptions] = None,
    timeout: Optional[float] = None,
    runner: Optional[Runner] = None,
) -> RunResult:
    """Race agents with the given runner, or a default one built from config."""

    return await (runner or Runner()).race(agents, input, options, timeout)


def run_sync(
    agent: Agent,
    input: RunInput,
    options: Optional[RunOptions] = None,
    runner: Optional[Runner] = None,
) -> RunResult:
    return asyncio.run(run(agent, input, options, runner))


def resume_sync(
    state: RunState,
    decisions: Optional[Decisions] = None,
    options: Optional[RunOptions] = None,
    runner: Optional[Runner] = None,
) -> RunResult:
    return asyncio.run(resume(state, decisions, options, runner))
