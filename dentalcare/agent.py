"""Conversation orchestrator for the DentalCare booking assistant.

Architecture:
  One user message drives a LangGraph StateGraph with three nodes:

    1. **assistant**              — sends the dialogue to Claude (with the
                                    booking tools bound), under the retry policy
    2. **tools**                  — runs the requested tools through the
                                    ToolExecutor and feeds the results back
    3. **tool_budget_exhausted**  — answers still-pending calls with a
                                    "limit reached" result once the per-message
                                    round budget is spent

  Routing:
    assistant → (tool calls, budget left?) → tools → assistant (loop)
              → (tool calls, budget spent) → tool_budget_exhausted → END
              → (no tool calls)            → END

  The round budget is an anti-loop guard: a model that keeps asking for
  tools cannot hold a session forever.

  Memory:
    Dialogue state lives in a MemorySaver checkpoint keyed by the session's
    ``thread_id``.  The user-visible transcript lives on the :class:`Session`
    and only ever receives the user's text and the final assistant reply.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, TypeVar

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict

from dentalcare.config import ANTHROPIC_API_KEY, MAX_TOOL_ROUNDS, MODEL_NAME
from dentalcare.errors import (
    ErrorKind,
    ModelUnavailableError,
    SessionBusyError,
    classify_error,
    user_facing_message,
)
from dentalcare.prompts import get_system_prompt
from dentalcare.services.metrics import metrics
from dentalcare.tools.booking import (
    BOOK_APPOINTMENT,
    TOOL_DECLARATIONS,
    ToolExecutor,
    ToolInvocation,
)

logger = logging.getLogger(__name__)

# ── Retry policy for model sends ─────────────────────────────────────
MAX_MODEL_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 1.5

FALLBACK_REPLY = "I've processed your request."
BUDGET_EXHAUSTED_RESULT = (
    "Error: Tool-call limit reached for this message. The tool was not run."
)

T = TypeVar("T")


# ── Session & transcript ─────────────────────────────────────────────


@dataclass
class Turn:
    role: Literal["user", "assistant"]
    text: str
    is_error: bool = False


@dataclass
class Session:
    """One conversation with the receptionist.

    ``transcript`` is append-only.  ``thread_id`` is the handle to the
    dialogue state held by the orchestrator's checkpointer; a reset swaps
    it for a fresh one.  ``on_booking_change`` is called whenever a turn
    books (or is about to book) an appointment so the owner can re-fetch
    its booking history.
    """

    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    transcript: list[Turn] = field(default_factory=list)
    on_booking_change: Callable[[], Any] | None = None
    thread_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    tool_rounds: int = 0
    bookings_changed: bool = False
    pending: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def append(self, role: Literal["user", "assistant"], text: str, *, is_error: bool = False) -> Turn:
        turn = Turn(role=role, text=text, is_error=is_error)
        self.transcript.append(turn)
        return turn

    def begin_turn(self) -> None:
        with self._lock:
            if self.pending:
                raise SessionBusyError(f"Session {self.session_id} already has a message in flight")
            self.pending = True
            self.bookings_changed = False

    def end_turn(self) -> None:
        with self._lock:
            self.pending = False

    def notify_booking_change(self) -> None:
        self.bookings_changed = True
        if self.on_booking_change is None:
            return
        try:
            self.on_booking_change()
        except Exception:
            # The refresh is a read-only side channel; it never fails the turn
            logger.exception("Booking history refresh failed for session %s", self.session_id)

    def reset(self) -> None:
        """Start over with an empty transcript and a fresh dialogue.

        Raises SessionBusyError while a message is in flight.
        """
        with self._lock:
            if self.pending:
                raise SessionBusyError(f"Session {self.session_id} cannot be reset mid-turn")
            self.transcript.clear()
            self.thread_id = str(uuid.uuid4())
            self.tool_rounds = 0
            self.bookings_changed = False


class SessionStore:
    """Thread-safe map of API session ids to sessions."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id)
                self._sessions[session_id] = session
                logger.info("Started new session: %s", session_id)
            return session

    def __len__(self) -> int:
        return len(self._sessions)


# ── Model sends with retry ───────────────────────────────────────────


def invoke_with_retry(
    send: Callable[[Any], T],
    payload: Any,
    *,
    operation: str = "llm_invoke",
    max_attempts: int = MAX_MODEL_ATTEMPTS,
    backoff_seconds: float = RETRY_BACKOFF_SECONDS,
) -> T:
    """Call ``send(payload)``, retrying transient upstream failures.

    Attempt *n* that fails transiently waits ``n * backoff_seconds`` before
    the same payload is resent.  Any other failure propagates at once.  A
    transient failure on the last attempt raises ModelUnavailableError.
    """
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            with metrics.track("anthropic", operation):
                return send(payload)
        except Exception as exc:
            if classify_error(exc) is not ErrorKind.TRANSIENT:
                raise
            last_error = exc

        if attempt < max_attempts:
            delay = attempt * backoff_seconds
            logger.warning(
                "Model overloaded (attempt %d/%d). Retrying in %.1fs…",
                attempt, max_attempts, delay,
            )
            time.sleep(delay)

    raise ModelUnavailableError(
        f"Service unavailable after {max_attempts} attempts: {last_error}"
    ) from last_error


# ── Graph state & helpers ────────────────────────────────────────────


class ConversationState(TypedDict):
    """State flowing through the graph.

    ``messages`` uses the ``add_messages`` reducer so nodes append.
    ``tool_rounds`` counts tool rounds for the current user message only;
    every new message resets it to zero.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    tool_rounds: int


def message_text(message: AnyMessage) -> str:
    """Plain text of a message whose content may be a list of blocks."""
    content = message.content
    if isinstance(content, str):
        return content.strip()
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts).strip()


def final_reply(messages: Sequence[AnyMessage]) -> str:
    """Text of the last assistant message, or the generic acknowledgement."""
    for message in reversed(messages):
        if isinstance(message, AIMessage):
            return message_text(message) or FALLBACK_REPLY
    return FALLBACK_REPLY


def _trailing_tool_results(messages: Sequence[AnyMessage]) -> list[ToolMessage]:
    results: list[ToolMessage] = []
    for message in reversed(messages):
        if not isinstance(message, ToolMessage):
            break
        results.append(message)
    return results


def route_after_tools(state: ConversationState) -> str:
    """Send fresh tool results back to the model; stop if none were produced."""
    if isinstance(state["messages"][-1], ToolMessage):
        return "assistant"
    return END


def _build_llm():
    """Claude with the booking tools bound.

    The SDK's own retries are disabled so :func:`invoke_with_retry` is the
    single retry policy.
    """
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.1,
        max_tokens=1024,
        max_retries=0,
    )
    return llm.bind_tools(TOOL_DECLARATIONS)


# ── Orchestrator ─────────────────────────────────────────────────────


class ConversationOrchestrator:
    """Drives tool-augmented conversations for any number of sessions."""

    def __init__(
        self,
        llm=None,
        executor: ToolExecutor | None = None,
        *,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        max_model_attempts: int = MAX_MODEL_ATTEMPTS,
        checkpointer: BaseCheckpointSaver | None = None,
    ):
        self._llm = llm if llm is not None else _build_llm()
        self._executor = executor or ToolExecutor()
        self._max_tool_rounds = max_tool_rounds
        self._max_model_attempts = max_model_attempts
        # thread_id -> session, for sessions with a turn in flight
        self._active: dict[str, Session] = {}
        self._graph = self._build_graph(checkpointer or MemorySaver())
        logger.debug(
            "Orchestrator compiled — model: %s, tools: %d, max tool rounds: %d",
            MODEL_NAME, len(TOOL_DECLARATIONS), max_tool_rounds,
        )

    # ── Public API ───────────────────────────────────────────────────

    def send(self, session: Session, text: str) -> Turn:
        """Process one user message and return the assistant turn it produced.

        Never raises for model or tool failures; those become an error turn.
        Raises SessionBusyError if *session* is already processing a message.
        """
        session.begin_turn()
        thread_id = session.thread_id
        session.append("user", text)
        self._active[thread_id] = session
        try:
            result = self._graph.invoke(
                {"messages": [HumanMessage(content=text)], "tool_rounds": 0},
                config={"configurable": {"thread_id": thread_id}},
            )
            session.tool_rounds = result.get("tool_rounds", 0)
            return session.append("assistant", final_reply(result.get("messages", [])))
        except Exception as exc:
            logger.exception("Chat turn failed for session %s", session.session_id)
            return session.append("assistant", user_facing_message(exc), is_error=True)
        finally:
            self._active.pop(thread_id, None)
            session.end_turn()

    # ── Nodes ────────────────────────────────────────────────────────

    def _session_for(self, config: RunnableConfig) -> Session | None:
        thread_id = config.get("configurable", {}).get("thread_id")
        return self._active.get(thread_id)

    def _assistant_node(self, state: ConversationState, config: RunnableConfig) -> dict:
        messages = state["messages"]
        payload = [SystemMessage(content=get_system_prompt())] + list(messages)
        response = invoke_with_retry(
            self._llm.invoke, payload, max_attempts=self._max_model_attempts,
        )

        # A booking requested right after a tool round: refresh history early
        if _trailing_tool_results(messages) and any(
            call["name"] == BOOK_APPOINTMENT for call in getattr(response, "tool_calls", []) or []
        ):
            session = self._session_for(config)
            if session is not None:
                session.notify_booking_change()
        return {"messages": [response]}

    def _tools_node(self, state: ConversationState, config: RunnableConfig) -> dict:
        last = state["messages"][-1]
        invocations = [ToolInvocation.from_tool_call(call) for call in last.tool_calls]
        results = self._executor.execute(invocations)
        rounds = state.get("tool_rounds", 0) + 1
        logger.debug("Tool round %d produced %d result(s)", rounds, len(results))

        if any(r.name == BOOK_APPOINTMENT for r in results):
            session = self._session_for(config)
            if session is not None:
                session.notify_booking_change()

        if not results:
            return {"tool_rounds": rounds}
        return {"messages": [r.to_message() for r in results], "tool_rounds": rounds}

    def _budget_exhausted_node(self, state: ConversationState) -> dict:
        last = state["messages"][-1]
        logger.warning(
            "Tool round budget (%d) exhausted with %d call(s) pending",
            self._max_tool_rounds, len(last.tool_calls),
        )
        return {
            "messages": [
                ToolMessage(content=BUDGET_EXHAUSTED_RESULT, tool_call_id=call["id"], name=call["name"])
                for call in last.tool_calls
            ]
        }

    # ── Routing ──────────────────────────────────────────────────────

    def route_after_assistant(self, state: ConversationState) -> str:
        last = state["messages"][-1]
        if not getattr(last, "tool_calls", None):
            return END
        if state.get("tool_rounds", 0) >= self._max_tool_rounds:
            return "tool_budget_exhausted"
        return "tools"

    def _build_graph(self, checkpointer: BaseCheckpointSaver):
        graph = StateGraph(ConversationState)

        graph.add_node("assistant", self._assistant_node)
        graph.add_node("tools", self._tools_node)
        graph.add_node("tool_budget_exhausted", self._budget_exhausted_node)

        graph.set_entry_point("assistant")
        graph.add_conditional_edges(
            "assistant",
            self.route_after_assistant,
            {"tools": "tools", "tool_budget_exhausted": "tool_budget_exhausted", END: END},
        )
        graph.add_conditional_edges("tools", route_after_tools, {"assistant": "assistant", END: END})
        graph.add_edge("tool_budget_exhausted", END)

        return graph.compile(checkpointer=checkpointer)


def create_orchestrator(**kwargs) -> ConversationOrchestrator:
    """Build the production orchestrator (Claude + Cal.com tools)."""
    return ConversationOrchestrator(**kwargs)
