# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Model and endpoints come from the environment (see config.py). Swap
# VIDEO_AGENT_MODEL for any OpenRouter-supported model.
# https://openrouter.ai/models

import argparse

from video_agent import display
from video_agent.builtin import build_registry
from video_agent.config import Settings
from video_agent.models import UserRequest
from video_agent.observer import TaskObserver
from video_agent.reasoning import OpenAIReasoningEngine
from video_agent.runner import STRATEGIES, TaskRunner

# Demo requests, used when no request is given on the command line.
PROMPTS = [
    # Educational: analysis → script → images → voice → render
    "Create a 60 second explainer on how ocean tides work, aimed at middle school students.",

    # Commercial: short, punchy, should lean on images over narration
    "Make a 30 second promo for a reusable coffee cup brand, upbeat and friendly.",
]


def main() -> None:
    parser = argparse.ArgumentParser(prog="video-agent", description="Generate videos from a text request.")
    parser.add_argument("request", nargs="*", help="Video request text (defaults to the demo prompts).")
    parser.add_argument("--strategy", choices=sorted(STRATEGIES), default="plan")
    parser.add_argument("--style", default="", help="Requested video style.")
    args = parser.parse_args()

    settings = Settings.from_env()
    display.set_quiet(settings.quiet)
    registry = build_registry(settings)
    runner = TaskRunner(registry, OpenAIReasoningEngine(settings), TaskObserver(), settings)
    display.banner(settings.model, args.strategy, registry.names())

    prompts = [" ".join(args.request)] if args.request else PROMPTS
    try:
        for prompt in prompts:
            task_id = runner.submit(UserRequest(text=prompt, style=args.style), strategy=args.strategy)
            outcome = runner.result(task_id)
            final = outcome.output.final if outcome.output is not None else ""
            print(f"\n[{outcome.status.value.upper()}] {task_id} {final or outcome.error}\n")
    finally:
        runner.shutdown()


if __name__ == "__main__":
    main()
