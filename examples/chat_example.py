"""
Examples demonstrating llamasession: streaming chat, cancellation and vision.

Usage:
    python examples/chat_example.py --model ./model.gguf
    python examples/chat_example.py --model ./model.gguf --mmproj ./mmproj.gguf --image cat.png
"""

import argparse
import asyncio
import logging
import threading

import llamasession
from llamasession import (
    CancellationToken,
    ImageData,
    LlamaSession,
    Message,
    SamplingParams,
    SessionParams,
)


def print_progress(progress: float, stage: str) -> None:
    print(f"[{progress * 100:5.1f}%] {stage}")


## Example 1: Streaming Chat


def example_streaming(session: LlamaSession) -> None:
    """
    Stream the reply token by token.
    """
    print("=" * 60)
    print("Example 1: Streaming Chat")
    print("=" * 60)

    conversation = [
        Message.system("You are a concise assistant."),
        Message.user("Explain what a GGUF file is in two sentences."),
    ]
    result = session.generate_response(
        conversation,
        sampling=SamplingParams(temperature=0.2, max_tokens=128),
        token_callback=lambda token: print(token, end="", flush=True),
    )
    print()

    if result.is_error:
        print(f"Generation failed: {result}")
        return

    stats = session.get_generation_stats().unwrap()
    print(f"\n{stats.tokens_generated} tokens at {stats.tokens_per_second:.1f} tok/s\n")


## Example 2: Cancellation From Another Thread


def example_cancellation(session: LlamaSession) -> None:
    """
    Stop a long generation after two seconds.
    """
    print("=" * 60)
    print("Example 2: Cancellation")
    print("=" * 60)

    token = CancellationToken()
    threading.Timer(2.0, token.cancel).start()

    result = session.generate_response(
        [Message.user("Write a very long story about a lighthouse keeper.")],
        token_callback=lambda t: print(t, end="", flush=True),
        cancellation_token=token,
    )
    print(f"\n\nResult: {result.code.name if result.is_error else 'finished'}\n")


## Example 3: Vision


def example_vision(session: LlamaSession, image_path: str) -> None:
    """
    Ask a question about an image (requires --mmproj).
    """
    print("=" * 60)
    print("Example 3: Vision")
    print("=" * 60)

    message = Message.user("Describe this image.", images=[ImageData.from_file(image_path)])
    result = session.generate_response([message], progress_callback=print_progress)
    print(result.unwrap_or(f"Failed: {result}"))
    print()


## Example 4: Async


async def example_async(session: LlamaSession) -> None:
    """
    Generate without blocking the event loop.
    """
    print("=" * 60)
    print("Example 4: Async")
    print("=" * 60)

    result = await session.generate_response_async(
        [{"role": "user", "content": "Name three prime numbers."}],
        sampling=SamplingParams(temperature=0.0, max_tokens=32),
    )
    print(result.unwrap_or(str(result)))
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="llamasession examples")
    parser.add_argument("--model", required=True, help="Path to a GGUF chat model")
    parser.add_argument("--mmproj", default="", help="Path to a GGUF multimodal projector")
    parser.add_argument("--image", default="", help="Image for the vision example")
    parser.add_argument("--threads", type=int, default=6)
    parser.add_argument("--gpu-layers", type=int, default=0)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    print(f"llamasession {llamasession.__version__} on {llamasession.get_device_info()}")

    params = SessionParams(
        model_path=args.model,
        mmproj_path=args.mmproj,
        threads=args.threads,
        gpu_layers=args.gpu_layers,
    )

    with LlamaSession() as session:
        result = session.initialize(params, progress_callback=print_progress)
        if result.is_error:
            raise SystemExit(f"Could not load model: {result}")
        print(session.get_model_info().unwrap())

        example_streaming(session)
        example_cancellation(session)
        if args.mmproj and args.image:
            example_vision(session, args.image)
        asyncio.run(example_async(session))

    llamasession.shutdown_executor()


if __name__ == "__main__":
    main()
