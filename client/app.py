import asyncio
import logging
import threading
from concurrent.futures import Future
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Coroutine, TypeVar

import streamlit as st

from mcpchat.client import ChatApiClient, ChatFacade
from mcpchat.models import MessageType, Sender
from mcpchat.settings import get_settings

T = TypeVar("T")


def setup_client_logging() -> logging.Logger:
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("mcpchat.client")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "client.log", maxBytes=2_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)
    return logger


LOGGER = setup_client_logging()


class FacadeRunner:
    """Keeps a ChatFacade on its own event loop thread across Streamlit reruns.

    Streamlit re-executes this script on every interaction, so the facade and
    its push listener live on a long-running loop instead of per-run loops.
    """

    def __init__(self, server_url: str) -> None:
        self.server_url = server_url
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self._thread.start()
        self.facade: ChatFacade = self.run(self._build(server_url))

    @staticmethod
    async def _build(server_url: str) -> ChatFacade:
        return ChatFacade(ChatApiClient(server_url))

    def submit(self, coro: Coroutine[Any, Any, T]) -> "Future[T]":
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine[Any, Any, T], timeout: float = 60.0) -> T:
        return self.submit(coro).result(timeout=timeout)


def get_runner(server_url: str) -> FacadeRunner:
    runner: FacadeRunner | None = st.session_state.get("runner")
    if runner is None or runner.server_url != server_url:
        runner = FacadeRunner(server_url)
        st.session_state["runner"] = runner
    return runner


AVATARS = {Sender.USER: "user", Sender.ASSISTANT: "assistant"}
QUICK_MESSAGES = {
    "Help": "What can you do?",
    "Calculator": "Calculate 15 + 27",
    "Weather": "Weather in Paris",
    "System Info": "System info",
}


st.set_page_config(page_title="MCP Chatbot", page_icon="🤖", layout="centered")

st.title("MCP Chatbot")

with st.sidebar:
    st.subheader("Connection")
    server_url = st.text_input("Server URL", value=get_settings().server_url)
    runner = get_runner(server_url)
    facade = runner.facade

    if facade.connected:
        st.success("Connected")
        if st.button("Disconnect"):
            runner.run(facade.disconnect())
            st.rerun()
    else:
        st.error("Disconnected")
        if st.button("Connect"):
            try:
                runner.run(facade.connect())
            except Exception as e:
                LOGGER.error("Connection failed: %s", e)
            st.rerun()

    st.markdown("---")
    if st.button("Clear chat"):
        facade.clear()

    st.subheader("Available tools")
    for tool in facade.tools:
        st.markdown(f"**{tool.get('title') or tool['name']}**  \n{tool.get('description', '')}")


@st.fragment(run_every=2)
def transcript_view() -> None:
    for m in facade.transcript:
        with st.chat_message(AVATARS[m.sender]):
            if m.type == MessageType.ERROR:
                st.error(m.content)
            else:
                st.markdown(m.content)
            st.caption(m.timestamp.astimezone().strftime("%H:%M"))


transcript_view()

cols = st.columns(len(QUICK_MESSAGES))
quick = None
for col, (label, text) in zip(cols, QUICK_MESSAGES.items()):
    if col.button(label, disabled=not facade.connected):
        quick = text

prompt = st.chat_input(
    "Type your message... (try 'calculate 5 + 3' or 'weather in London')",
    disabled=not facade.connected,
)
message = prompt or quick
if message:
    runner.run(facade.send_message(message))
    st.rerun()
