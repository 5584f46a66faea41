#!/usr/bin/env python3
"""
Main entry point for the vocal stress engine.
Allows running the package with: python -m vocalstress

Commands:
    review <file.vsa>                   Print the contents of a session archive
    simulate [--seed=N] [--save=path]   Run a full session on synthetic tones
"""
import sys
import random

from .config import get_config, SETTINGS_FILE
from .utils import setup_logging
from .interview import SessionStateMachine
from .interview.testing import tone_pcm
from .infrastructure.data import load_session, save_session, SessionArchiveError

USAGE = "Usage: python -m vocalstress review <file.vsa> | simulate [--seed=N] [--save=path]"


def review(path: str) -> int:
    """Print an archived session."""
    try:
        record = load_session(path)
    except SessionArchiveError as e:
        print(f"❌ {e}")
        return 1

    print("=" * 50)
    print(f"📁 Session of {record.session_date:%Y-%m-%d %H:%M:%S}")
    print("=" * 50)
    q, s = record.questioner_signature, record.subject_signature
    print(f"🎙️  Questioner: rms={q.rms:.4f} pitch={q.fundamental_hz:.1f}Hz timbre={q.spectral_centroid_hz:.1f}Hz")
    print(f"👤 Subject:    rms={s.rms:.4f} pitch={s.fundamental_hz:.1f}Hz timbre={s.spectral_centroid_hz:.1f}Hz")

    for idx, log in enumerate(record.question_logs, 1):
        result = log.analysis_result
        flag = "⚠️ " if result.is_deceptive else "  "
        print(f"{flag}{idx}. {log.question_text}")
        print(f"     stress={result.stress_level:.2f} pitch={result.pitch:.1f}Hz "
              f"audio={len(log.answer_audio)} bytes")

    print("-" * 50)
    for item in record.event_log:
        print(f"{item.timestamp:%H:%M:%S}  {item.event_type:<16} {item.details}")

    print("-" * 50)
    outcome = record.final_result.value if record.final_result else "NOT FINISHED"
    print(f"🎯 Result: {outcome}")
    if record.result_summary:
        print(record.result_summary)
    return 0


def simulate(seed: int, save_path: str = "") -> int:
    """Drive a complete session with synthetic questioner and subject tones."""
    config = get_config(SETTINGS_FILE)
    rng = random.Random(seed)
    machine = SessionStateMachine(config=config, rng=rng)
    sr = config.sample_rate

    questioner_voice = tone_pcm(220.0, 0.08, 2048, sr)
    subject_voice = tone_pcm(120.0, 0.05, 2048, sr)

    try:
        machine.start_session()
        print("🎙️  Calibrating questioner and subject...")
        for voice in (questioner_voice, subject_voice):
            for _ in range(config.calibration_samples):
                future = machine.submit_audio(voice)
                if future is not None:
                    future.result()
        print(f"✅ State: {machine.current_state.value}")

        while True:
            question_text = machine.ask_next_question()
            if question_text is None:
                break
            question = machine.questions[machine.question_index]

            # Key answers get a random loudness boost
            gain = 1.0 + (rng.uniform(0.0, 1.2) if question.is_key_question else rng.uniform(-0.1, 0.1))
            answer_audio = tone_pcm(120.0, min(0.9, 0.05 * gain), 4096, sr)
            future = machine.handle_response(question.expected_answer.value, answer_audio)
            result = future.result() if future is not None else None

            marker = "🔑" if question.is_key_question else "  "
            stress = f"{result.stress_level:.2f}" if result is not None else "n/a"
            print(f"{marker} {question_text}  →  stress {stress}")

        outcome = machine.end_session()
        print("=" * 50)
        print(f"🎯 Final Assessment: {outcome.result.value}")
        print(outcome.summary)
        print(f"📈 Session metrics: {machine.get_metrics()}")

        if save_path:
            written = save_session(machine.current_session, save_path)
            print(f"📁 Session archive saved: {written}")
    except SessionArchiveError as e:
        print(f"❌ {e}")
        return 1
    finally:
        machine.shutdown()
    return 0


def main():
    """Command-line interface for the vocal stress engine."""

    # Load configuration from settings file and environment
    try:
        config = get_config(SETTINGS_FILE)
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    setup_logging(config.log_file, config.log_level)

    args = sys.argv[1:]
    if not args:
        print(USAGE)
        sys.exit(2)

    command = args[0]
    if command == "review":
        if len(args) < 2:
            print(USAGE)
            sys.exit(2)
        sys.exit(review(args[1]))

    if command == "simulate":
        seed = 0
        save_path = ""
        for arg in args[1:]:
            if arg.startswith("--seed="):
                try:
                    seed = int(arg.split("=", 1)[1])
                except ValueError:
                    print("❌ Invalid seed value. Use --seed=<integer>")
                    sys.exit(1)
            elif arg.startswith("--save="):
                save_path = arg.split("=", 1)[1]
            else:
                print(f"❌ Unknown option: {arg}")
                sys.exit(2)
        sys.exit(simulate(seed, save_path))

    print(f"❌ Unknown command: {command}")
    print(USAGE)
    sys.exit(2)


if __name__ == "__main__":
    main()
