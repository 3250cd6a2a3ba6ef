from __future__ import annotations

from typing import List, Optional
from pathlib import Path
import os
import uuid

import httpx
import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from .models import ChatMessage, GroundingSource
from .api import ChatAPIClient, ChatAPIError


app = typer.Typer(help="Terminal client for the Tokyo travel chat server.")
console = Console()
trace_console = Console(stderr=True)


def _server_url(server: Optional[str]) -> str:
    return server or os.getenv("CHAT_SERVER_URL", "http://localhost:3000")


def transcript_markdown(messages: List[ChatMessage]) -> str:
    parts: List[str] = []
    for msg in messages:
        speaker = "You" if msg.role == "user" else "Tokyo Expert"
        block = f"**{speaker}:** {msg.text}"
        if msg.sources:
            links = "\n".join(f"- [{s.title}]({s.uri})" for s in msg.sources)
            block += f"\n\nSources:\n{links}"
        parts.append(block)
    return "\n\n".join(parts)


def ask_once(api: ChatAPIClient, session, question: str) -> Optional[ChatMessage]:
    chunks: List[str] = []
    result: dict = {}

    def on_chunk(text: str) -> None:
        console.print(text, end="", markup=False)
        chunks.append(text)

    def on_complete(sources: List[GroundingSource]) -> None:
        result["sources"] = sources

    def on_error(err: Exception) -> None:
        result["error"] = err

    api.ask_tokyo_expert(session, question, on_chunk, on_complete, on_error)
    console.print()

    if "error" in result:
        trace_console.print(str(result["error"]), style="bold red")
        return None

    sources = result.get("sources") or []
    for s in sources:
        trace_console.print(f"[source] {s.title} <{s.uri}>", style="dim", markup=False)
    return ChatMessage(id=uuid.uuid4().hex, role="model", text="".join(chunks), sources=sources or None)


@app.command()
def chat(
    question: Optional[str] = typer.Option(
        None, "--question", "-q", help="Ask a single question and exit."
    ),
    server: Optional[str] = typer.Option(
        None, "--server", help="Chat server base URL (defaults to CHAT_SERVER_URL)."
    ),
    output_file: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save the conversation as Markdown."
    ),
) -> None:
    """Open a chat session and ask questions about the Tokyo trip."""
    messages: List[ChatMessage] = []
    with ChatAPIClient(_server_url(server)) as api:
        try:
            with console.status("Connecting..."):
                session = api.initialize_chat_session()
        except (ChatAPIError, httpx.HTTPError) as e:
            trace_console.print(f"Could not start a chat session: {e}", style="bold red")
            raise typer.Exit(code=1)

        def turn(text: str) -> None:
            messages.append(ChatMessage(id=uuid.uuid4().hex, role="user", text=text))
            reply = ask_once(api, session, text)
            if reply is not None:
                messages.append(reply)

        if question:
            turn(question)
        else:
            while True:
                try:
                    user_in = typer.prompt("Ask about your Tokyo trip (type 'exit' to quit)")
                except (EOFError, KeyboardInterrupt):
                    break
                text = user_in.strip()
                if not text:
                    continue
                if text.lower() in {"exit", "quit", "q"}:
                    break
                turn(text)

    if output_file and messages:
        try:
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text(transcript_markdown(messages) + "\n", encoding="utf-8")
            console.print(f"Saved conversation to {output_file}", style="green")
        except OSError as e:
            trace_console.print(f"Failed to write file: {e}", style="bold red")


@app.command()
def summary(
    server: Optional[str] = typer.Option(
        None, "--server", help="Chat server base URL (defaults to CHAT_SERVER_URL)."
    ),
) -> None:
    """Show the parsed itinerary summary."""
    with ChatAPIClient(_server_url(server)) as api:
        journey = api.get_journey_summary()
    if journey is None:
        trace_console.print("Itinerary summary is not available.", style="bold red")
        raise typer.Exit(code=1)

    overview = Table(title="Trip overview", show_header=False)
    overview.add_row("Dates", Text(", ".join(journey.dates) or "-"))
    overview.add_row("Hotel", journey.hotel or "-")
    overview.add_row("Departure", Text(journey.flights.departure or "-"))
    overview.add_row("Return", Text(journey.flights.return_flight or "-"))
    console.print(overview)

    for plan in journey.dailyPlans:
        day_table = Table(title=plan.day, show_header=False)
        for activity in plan.activities:
            day_table.add_row(Text(activity))
        console.print(day_table)


if __name__ == "__main__":
    app()
