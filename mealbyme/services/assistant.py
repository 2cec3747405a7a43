"""OpenAI Assistants service: threads, messages and runs."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from mealbyme.config import get_settings
from mealbyme.errors import ConfigurationError, UpstreamServiceError


@dataclass(frozen=True)
class JobHandle:
    """
    Identifies one assistant run.

    The pair is the only durable reference to an in-flight generation; the
    browser carries it in the URL so polling can resume after a reload.
    """
    thread_id: str
    run_id: str


class AssistantService:
    """Thin wrapper over the Assistants API that classifies every failure."""

    def __init__(self, client: AsyncOpenAI):
        self.client = client

    async def create_thread(self) -> str:
        try:
            thread = await self.client.beta.threads.create()
        except OpenAIError as e:
            raise UpstreamServiceError("Failed to create thread", detail=str(e))
        return thread.id

    async def post_message(self, thread_id: str, content: str) -> None:
        try:
            await self.client.beta.threads.messages.create(
                thread_id=thread_id,
                role="user",
                content=content,
            )
        except OpenAIError as e:
            raise UpstreamServiceError("Failed to create message", detail=str(e))

    async def start_run(self, thread_id: str, assistant_id: str) -> str:
        try:
            run = await self.client.beta.threads.runs.create(
                thread_id=thread_id,
                assistant_id=assistant_id,
            )
        except OpenAIError as e:
            raise UpstreamServiceError("Failed to create run", detail=str(e))
        return run.id

    async def submit(self, prompt: str, assistant_id: str) -> JobHandle:
        """Create a thread, post the prompt and start a run against it."""
        thread_id = await self.create_thread()
        await self.post_message(thread_id, prompt)
        run_id = await self.start_run(thread_id, assistant_id)
        print(f"🤖 Started assistant run {run_id} on thread {thread_id}")
        return JobHandle(thread_id=thread_id, run_id=run_id)

    async def get_run_status(self, handle: JobHandle) -> str:
        """Current run status, e.g. queued, in_progress, completed, failed."""
        try:
            run = await self.client.beta.threads.runs.retrieve(
                run_id=handle.run_id,
                thread_id=handle.thread_id,
            )
        except OpenAIError as e:
            raise UpstreamServiceError("Failed to get run status", detail=str(e))
        return run.status

    async def get_latest_message_text(self, thread_id: str) -> Optional[str]:
        """
        Text of the most recent message in the thread (the assistant's reply).

        Returns None if the newest message does not start with a text block.
        """
        try:
            messages = await self.client.beta.threads.messages.list(
                thread_id=thread_id,
                order="desc",
                limit=1,
            )
        except OpenAIError as e:
            raise UpstreamServiceError("Failed to get messages", detail=str(e))

        if not messages.data or not messages.data[0].content:
            return None

        block = messages.data[0].content[0]
        if getattr(block, "type", None) != "text":
            return None
        return block.text.value


@lru_cache
def get_assistant_service() -> AssistantService:
    """Process-wide assistant service (one AsyncOpenAI client)."""
    settings = get_settings()
    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY")
    return AssistantService(AsyncOpenAI(api_key=settings.openai_api_key))


def require_assistant_id(assistant_id: Optional[str], setting_name: str) -> str:
    """Fail closed when an assistant id is not configured."""
    if not assistant_id:
        print(f"❌ {setting_name} is not set")
        raise ConfigurationError(setting_name)
    return assistant_id
