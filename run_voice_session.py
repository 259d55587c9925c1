"""Run a voice session from the terminal.

Speak into the configured microphone; typed lines are sent as text turns and
`/quit` (or EOF) ends the session. Pass `--patient <id>` for a provider report
session grounded in that patient's recent conversations.

Run: `python run_voice_session.py --token <bearer> [--patient <id>] [--verbose]`.
"""
import argparse
import asyncio
import logging

from dotenv import load_dotenv

from services.realtime.events import (
	AssistantMessage,
	LoggingDiagnosticSink,
	PatientTranscript,
	RateLimited,
	RealtimeError,
	SessionEnded,
	SessionFailed,
	SlotsUpdated,
	StateChanged,
	TranscriptionFailed,
)
from services.realtime.session_engine import create_provider_report, create_symptom_recorder

QUIT_COMMAND = "/quit"


def _print_event(event) -> None:
	if isinstance(event, StateChanged):
		print(f"[state] {event.previous.value} -> {event.current.value}")
	elif isinstance(event, AssistantMessage):
		print(f"assistant: {event.text}")
	elif isinstance(event, PatientTranscript):
		print(f"you: {event.text}")
	elif isinstance(event, SlotsUpdated):
		print(f"[slots] {event.slots.as_dict()}")
	elif isinstance(event, (RateLimited, TranscriptionFailed, RealtimeError, SessionFailed)):
		print(f"[warning] {event.message}")
	elif isinstance(event, SessionEnded):
		print(f"[ended] reason={event.reason} saved={event.saved}")
		if event.summary is not None:
			print(event.summary.plain_text)


async def main(args: argparse.Namespace) -> None:
	sink = LoggingDiagnosticSink() if args.verbose else None
	if args.patient:
		engine = create_provider_report(args.patient, token=args.token, sink=sink)
	else:
		engine = create_symptom_recorder(token=args.token, sink=sink)
	engine.subscribe(_print_event)

	async with engine:
		await engine.start()
		while True:
			try:
				line = await asyncio.to_thread(input)
			except EOFError:
				break
			if line.strip() == QUIT_COMMAND:
				break
			if line.strip():
				engine.send_text(line.strip())
		await engine.stop()


if __name__ == "__main__":
	load_dotenv()
	parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
	parser.add_argument("--token", help="Bearer token for the health tracker backend")
	parser.add_argument("--patient", help="Patient id for a provider report session")
	parser.add_argument("--verbose", action="store_true", help="Debug-log every raw realtime event")
	arguments = parser.parse_args()
	logging.basicConfig(level=logging.DEBUG if arguments.verbose else logging.INFO)
	asyncio.run(main(arguments))
