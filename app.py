"""Web interface using Streamlit."""

import asyncio
import threading
from collections.abc import Coroutine
from typing import Any, TypeVar

import streamlit as st

from cvchat import ChatSession, CVChatError, ResponseStyle, create_session
from cvchat.config import config
from cvchat.styles import STYLE_PROFILES

T = TypeVar("T")

CONFIDENCE_HIGH = 0.6
CONFIDENCE_MEDIUM = 0.3

config.setup_logging()
logger = config.get_logger(__name__)


class AsyncRunner:
    """Runs coroutines on one long-lived event loop in a daemon thread.

    Engine workers are asyncio tasks and must outlive Streamlit reruns.
    """

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self._thread.start()

    def run(self, coroutine: Coroutine[Any, Any, T]) -> T:
        return asyncio.run_coroutine_threadsafe(coroutine, self.loop).result()


class SessionState:
    """Centralized session state management."""

    @staticmethod
    def initialize() -> None:
        """Initialize all session state variables."""
        defaults = {
            "runner": None,
            "chat_session": None,
            "messages": [],
            "show_contact_form": False,
            "mailto_link": None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

    @staticmethod
    def reset_conversation() -> None:
        """Clear the visible conversation."""
        st.session_state.messages = []
        st.session_state.show_contact_form = False
        st.session_state.mailto_link = None

    @staticmethod
    def is_system_ready() -> bool:
        """Check if the chat session is started.

        Returns:
            bool: True if a chat session and its runner exist.
        """
        return (
            st.session_state.get("chat_session") is not None
            and st.session_state.get("runner") is not None
        )


def validate_configuration() -> bool:
    """Validate application configuration and show user feedback.

    Returns:
        bool: True if configuration is valid, False otherwise.
    """
    try:
        config.validate()
    except ValueError as e:
        st.error(f"Configuration Error: {e}")
        return False
    else:
        return True


def initialize_system() -> bool:
    """Load the knowledge base and start the engines.

    Returns:
        bool: True if initialization succeeds, False otherwise.
    """
    try:
        with st.spinner("Starting engines..."):
            runner = st.session_state.runner or AsyncRunner()
            session = create_session()
            result = runner.run(session.start())
            st.session_state.runner = runner
            st.session_state.chat_session = session

        logger.info("Chat session started with %s", result["available_engines"])
        st.success(
            f"Engines ready: {', '.join(result['available_engines'])}"
        )

    except (OSError, ValueError, CVChatError) as e:
        logger.exception("Failed to initialize system")
        st.error(f"Failed to initialize system: {e}")
        if config.is_development():
            st.exception(e)
        return False
    else:
        return True


def current_session() -> ChatSession:
    return st.session_state.chat_session


def render_sidebar() -> None:
    """Render the sidebar with style selection and system status."""
    with st.sidebar:
        st.header("System Configuration")

        if (
            st.button("Initialize System", use_container_width=True)
            and validate_configuration()
            and initialize_system()
        ):
            st.rerun()

        st.divider()
        st.subheader("System Status")
        config_status = "Valid" if validate_configuration() else "Invalid"
        st.write(f"**Configuration:** {config_status}")
        if not SessionState.is_system_ready():
            st.write("**System:** Not Initialized")
            return

        session = current_session()
        engines = session.orchestrator.available_engines
        st.write(f"**Engines:** {', '.join(engines)}")
        st.write(f"**Primary:** {session.orchestrator.primary_engine}")

        st.divider()
        st.subheader("Conversation")
        styles = list(ResponseStyle)
        selected = st.radio(
            "Response style",
            styles,
            index=styles.index(session.style),
            format_func=lambda style: STYLE_PROFILES[style].name,
        )
        if selected != session.style:
            session.select_style(selected)
            st.rerun()

        if st.button("Restart Conversation", use_container_width=True):
            session.restart()
            SessionState.reset_conversation()
            st.success("Conversation restarted!")
            st.rerun()


def render_contact_form() -> None:
    """Render the human-contact form after repeated low-confidence answers."""
    if not st.session_state.show_contact_form:
        return

    with st.form("contact_form"):
        st.subheader(f"Contact {config.PERSONA_NAME}")
        name = st.text_input("Your name")
        email = st.text_input("Your email")
        submitted = st.form_submit_button("Prepare email")

    if submitted:
        result = current_session().submit_contact_form(name, email)
        if result.success:
            st.session_state.mailto_link = result.mailto_link
        else:
            for field_name, error in result.field_errors.items():
                st.error(f"{field_name.capitalize()}: {error}")

    if st.session_state.mailto_link:
        st.link_button("Open email draft", st.session_state.mailto_link)


def render_chat_interface() -> None:
    """Render the chat history and the message input."""
    session = current_session()

    with st.chat_message("assistant"):
        st.write(session.greeting)

    for message in st.session_state.messages:
        with st.chat_message(message["role"]):
            st.write(message["content"])
            if "confidence" in message:
                confidence = message["confidence"]
                confidence_color = (
                    "green"
                    if confidence > CONFIDENCE_HIGH
                    else "orange"
                    if confidence > CONFIDENCE_MEDIUM
                    else "red"
                )
                st.caption(
                    f":{confidence_color}[confidence {confidence:.2f}]"
                    f" · {message.get('engine') or 'no engine'}"
                )

    question = st.chat_input("Ask about experience, skills or projects...")
    if not question or not question.strip():
        return

    st.session_state.messages.append({"role": "user", "content": question})
    with st.spinner("Thinking..."):
        try:
            response = st.session_state.runner.run(session.process_query(question))
        except CVChatError as e:
            logger.exception("Question processing failed")
            st.error(f"Failed to process question: {e}")
            return

    st.session_state.messages.append({
        "role": "assistant",
        "content": response.answer,
        "confidence": response.confidence,
        "engine": response.engine_used,
    })
    st.session_state.show_contact_form = response.show_contact_form
    st.rerun()


def render_system_info() -> None:
    """Render the engine metrics footer outside production."""
    if config.is_production():
        return
    st.markdown("---")
    with st.expander("Engine Metrics", expanded=False):
        stats = current_session().stats()
        st.json(stats["engines"])
        st.json(stats["conversation"])


def main() -> None:
    """Main entry point for the Streamlit web application.

    Sets up the page configuration, initializes session state, renders the
    sidebar, and orchestrates the chat, contact form and metrics views.
    """
    st.set_page_config(page_title=f"Chat with {config.PERSONA_NAME}", layout="wide")

    SessionState.initialize()

    st.title(f"Chat with {config.PERSONA_NAME}")
    st.markdown("---")

    render_sidebar()

    if not SessionState.is_system_ready():
        st.info("Please initialize the system using the sidebar to get started.")
        return

    render_chat_interface()
    render_contact_form()
    render_system_info()


if __name__ == "__main__":
    main()
