"""State-machine based chat session orchestration.

``ChatSession`` owns the document context, the ordered message log and the
in-flight flags, and composes the indexer, the turn responder, the synthesizer
and the capture pipeline::

    AWAITING_UPLOAD -> UPLOADING -> INDEXED
          ^               |            |
          +---- failure --+            |
          +------------ reset() -------+

Every awaited completion is checked against a generation counter before it
touches session state. ``reset()`` bumps the counter, so responses that arrive
for a discarded context are dropped.
"""

from __future__ import annotations

from typing import Callable, Optional

import structlog

from capture import CapturePipeline
from errors import (
    AssistantError,
    DeviceError,
    IllegalTransitionError,
    TransportError,
    UploadFailedError,
    ValidationError,
)
from interfaces import DocumentIndexer, Synthesizer, TurnResponder
from models import (
    AudioHandle,
    Message,
    RecordingStatus,
    Sender,
    SessionState,
    UploadJob,
    UploadStatus,
)

logger = structlog.get_logger(__name__)

FALLBACK_ANSWER = "Something went wrong with the server."
WELCOME_TEMPLATE = 'Success! I\'ve analyzed "{filename}". \n\nAsk me anything about the document.'

StateCallback = Callable[[SessionState, SessionState], None]
MessageCallback = Callable[[int, Message], None]
ErrorCallback = Callable[[str, str], None]
DraftCallback = Callable[[str], None]


class ChatSession:
    def __init__(
        self,
        indexer: DocumentIndexer,
        responder: TurnResponder,
        synthesizer: Optional[Synthesizer] = None,
        capture: Optional[CapturePipeline] = None,
        on_state_change: Optional[StateCallback] = None,
        on_message: Optional[MessageCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_draft: Optional[DraftCallback] = None,
    ) -> None:
        self._indexer = indexer
        self._responder = responder
        self._synthesizer = synthesizer
        self._capture = capture
        self._on_state_change = on_state_change
        self._on_message = on_message
        self._on_error = on_error
        self._on_draft = on_draft

        self._state = SessionState.AWAITING_UPLOAD
        self._generation = 0
        self._context_id: Optional[str] = None
        self._messages: list[Message] = []
        self._pending_turn = False
        self._draft = ""
        self._upload_job: Optional[UploadJob] = None
        self._synthesizing: set[int] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def context_id(self) -> Optional[str]:
        return self._context_id

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def pending_turn(self) -> bool:
        return self._pending_turn

    @property
    def upload_job(self) -> Optional[UploadJob]:
        return self._upload_job

    @property
    def recording_status(self) -> RecordingStatus:
        if self._capture is None:
            return RecordingStatus.IDLE
        return self._capture.status

    @property
    def draft(self) -> str:
        return self._draft

    def set_draft(self, text: str) -> None:
        self._draft = text
        if self._on_draft:
            self._on_draft(text)

    # ------------------------------------------------------------------
    # Document indexing
    # ------------------------------------------------------------------

    async def upload(self, filename: str, data: bytes) -> Optional[str]:
        """
        Upload a document and move the session to INDEXED.

        Raises UploadFailedError and returns to AWAITING_UPLOAD on failure.
        Returns None if the session was reset while the upload was in flight.
        """
        if self._state != SessionState.AWAITING_UPLOAD:
            raise IllegalTransitionError(f"cannot upload while {self._state.value}")

        job = UploadJob(filename=filename, data=data, status=UploadStatus.UPLOADING)
        self._upload_job = job
        generation = self._generation
        self._transition(SessionState.UPLOADING)

        try:
            context_id = await self._indexer.upload_document(filename, data)
        except AssistantError as exc:
            if generation != self._generation:
                logger.info("Discarding stale upload failure", filename=filename, error=exc.message)
                return None
            job.status = UploadStatus.FAILED
            job.reason = exc.message
            self._transition(SessionState.AWAITING_UPLOAD)
            if isinstance(exc, UploadFailedError):
                raise
            raise UploadFailedError(exc.message) from exc

        if generation != self._generation:
            logger.info("Discarding stale upload result", filename=filename)
            return None

        job.status = UploadStatus.SUCCESS
        job.context_id = context_id
        self._context_id = context_id
        self._upload_job = None
        self._transition(SessionState.INDEXED)
        self._append(Message(text=WELCOME_TEMPLATE.format(filename=filename), sender=Sender.ASSISTANT))
        return context_id

    # ------------------------------------------------------------------
    # Turn exchange
    # ------------------------------------------------------------------

    async def submit_turn(self, text: Optional[str] = None) -> Optional[Message]:
        """
        Send one question against the current document.

        Uses the draft when ``text`` is omitted. Returns the assistant reply,
        or None when the submission was ignored (turn or recording in flight)
        or went stale because of a reset.
        """
        if self._state != SessionState.INDEXED:
            raise IllegalTransitionError(f"cannot chat while {self._state.value}")

        question = self._draft if text is None else text
        if not question or not question.strip():
            raise ValidationError("question is empty")

        if self._pending_turn:
            logger.debug("Turn ignored, previous turn still pending")
            return None
        if self._capture is not None and self._capture.busy:
            logger.debug("Turn ignored, recording in progress")
            return None

        generation = self._generation
        self._append(Message(text=question, sender=Sender.USER))
        self.set_draft("")
        self._pending_turn = True
        try:
            return await self._exchange(question, generation)
        finally:
            if generation == self._generation:
                self._pending_turn = False

    async def _exchange(self, question: str, generation: int) -> Optional[Message]:
        answer: Optional[str] = None
        try:
            answer = await self._responder.ask(question, self._current_context_id())
        except TransportError as exc:
            logger.warning("Turn exchange failed", code=exc.code, error=exc.message)

        if generation != self._generation:
            logger.info("Discarding stale turn response")
            return None

        if answer is None:
            reply = Message(text=FALLBACK_ANSWER, sender=Sender.ASSISTANT)
            self._append(reply)
            return reply

        reply = Message(text=answer, sender=Sender.ASSISTANT)
        index = self._append(reply)
        if self._synthesizer is not None:
            handle = await self._synthesizer.synthesize(answer)
            self._bind_audio(generation, index, handle)
        return reply

    def _current_context_id(self) -> str:
        if self._context_id is None:
            raise IllegalTransitionError("no document context")
        return self._context_id

    # ------------------------------------------------------------------
    # Synthesis retry
    # ------------------------------------------------------------------

    async def retry_synthesis(self, index: int) -> Optional[AudioHandle]:
        if self._state != SessionState.INDEXED:
            raise IllegalTransitionError(f"no messages while {self._state.value}")
        message = self._messages[index]
        if message.sender != Sender.ASSISTANT:
            raise IllegalTransitionError("only assistant messages carry audio")
        if message.audio_handle is not None:
            return message.audio_handle
        if self._synthesizer is None or index in self._synthesizing:
            return None

        generation = self._generation
        self._synthesizing.add(index)
        try:
            handle = await self._synthesizer.synthesize(message.text)
        finally:
            if generation == self._generation:
                self._synthesizing.discard(index)
        return self._bind_audio(generation, index, handle)

    def _bind_audio(
        self,
        generation: int,
        index: int,
        handle: Optional[AudioHandle],
    ) -> Optional[AudioHandle]:
        if handle is None:
            return None
        if generation != self._generation:
            handle.release()
            return None
        message = self._messages[index]
        if message.audio_handle is not None:
            handle.release()
            return message.audio_handle
        message.attach_audio(handle)
        if self._on_message:
            self._on_message(index, message)
        return handle

    # ------------------------------------------------------------------
    # Voice input
    # ------------------------------------------------------------------

    async def record(self) -> Optional[str]:
        """
        Capture a clip and place its transcript in the draft.

        The transcript is not submitted. Device and transport failures are
        reported through ``on_error`` and return None.
        """
        if self._state != SessionState.INDEXED:
            raise IllegalTransitionError(f"cannot record while {self._state.value}")
        if self._capture is None:
            raise DeviceError("no microphone configured")
        if self._pending_turn:
            raise IllegalTransitionError("cannot record while a turn is pending")

        generation = self._generation
        try:
            transcript = await self._capture.record_and_transcribe()
        except (DeviceError, TransportError) as exc:
            if generation == self._generation:
                self._emit_error(exc.code, exc.message)
            return None

        if generation != self._generation:
            logger.info("Discarding stale transcript")
            return None
        self.set_draft(transcript)
        return transcript

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Discard the document context and every message."""
        if (
            self._state == SessionState.AWAITING_UPLOAD
            and not self._messages
            and self._upload_job is None
        ):
            return

        self._generation += 1
        for message in self._messages:
            if message.audio_handle is not None:
                message.audio_handle.release()
        self._messages = []
        self._context_id = None
        self._upload_job = None
        self._pending_turn = False
        self._synthesizing.clear()
        self.set_draft("")
        self._transition(SessionState.AWAITING_UPLOAD)
        logger.info("Session reset", generation=self._generation)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _append(self, message: Message) -> int:
        self._messages.append(message)
        index = len(self._messages) - 1
        if self._on_message:
            self._on_message(index, message)
        return index

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
