"""Terminal photo booth: runs the capture flow against a render server.

Usage:
    karl-booth                          # default camera, server from settings
    karl-booth --back --output photos/  # start with the rear camera
"""
import argparse
import asyncio
import random
from pathlib import Path
from typing import Callable, Optional, Sequence

from karl_selfie.client.camera import CameraController
from karl_selfie.client.flow import CaptureFlow, FlowState
from karl_selfie.client.hints import friendly_error
from karl_selfie.client.render_client import RenderClient
from karl_selfie.core.config import get_settings
from karl_selfie.core.errors import RenderRequestFailed
from karl_selfie.core.logging import setup_logging
from karl_selfie.models.camera import CameraConfig, FacingMode
from karl_selfie.models.scene import Scene

logger = setup_logging("booth")

RANDOM_CHOICES = frozenset({"r", "zufall", "random"})
NO_SWITCH_MESSAGE = "Nur eine Kamera gefunden, Wechseln nicht möglich."


def parse_scene_choice(
    text: str,
    scenes: Sequence[Scene],
    rng: Optional[random.Random] = None,
) -> tuple[Optional[str], Optional[int]]:
    """Interpret the user's answer on the scene selection screen.

    A number selects the catalog scene with that id, ``r`` a random one,
    anything else is taken as a free-text scene description.

    Returns:
        (custom_prompt, scene_id); both None for an empty answer.
    """
    answer = text.strip()
    if not answer:
        return None, None
    if answer.lower() in RANDOM_CHOICES and scenes:
        return None, (rng or random).choice(list(scenes)).id
    if answer.isdigit() and any(scene.id == int(answer) for scene in scenes):
        return None, int(answer)
    return answer, None


def _print_scenes(scenes: Sequence[Scene]) -> None:
    for scene in scenes:
        print(f"  {scene.id:>2}  {scene.emoji}  {scene.short_title}")


async def run_booth(
    flow: CaptureFlow,
    output_dir: Path,
    ask: Callable[[str], str] = input,
) -> int:
    """Interactive loop until the user quits (``q``) or input ends.

    Returns the process exit code: 1 when the render server cannot be
    reached at startup, 0 otherwise.
    """

    async def prompt(text: str) -> str:
        return await asyncio.to_thread(ask, text)

    try:
        scenes = await flow.render_client.list_scenes()
    except RenderRequestFailed as exc:
        logger.error(
            "Scene catalog unavailable: %s",
            exc.message,
            extra={"component": "Booth", "error_type": type(exc).__name__},
        )
        print(f"Ups! {friendly_error(exc.message)}")
        return 1

    await flow.grant()
    try:
        while True:
            if flow.state == FlowState.camera:
                answer = await prompt("[Enter] Foto, [s] Kamera wechseln, [q] Ende: ")
                if answer.strip().lower() == "q":
                    return 0
                if answer.strip().lower() == "s":
                    if flow.has_multiple_cameras:
                        await flow.switch_device()
                    else:
                        print(NO_SWITCH_MESSAGE)
                    continue
                if not await flow.capture() and flow.validation_message:
                    print(flow.validation_message)
            elif flow.state == FlowState.selecting_scene:
                _print_scenes(scenes)
                answer = await prompt("Szene (Nummer, [r] Zufall oder eigene Beschreibung): ")
                custom_prompt, scene_id = parse_scene_choice(answer, scenes)
                if custom_prompt or scene_id is not None:
                    print("Karl denkt nach... 🤔")
                if not await flow.submit(custom_prompt=custom_prompt, scene_id=scene_id):
                    if flow.validation_message:
                        print(flow.validation_message)
            elif flow.state == FlowState.result:
                assert flow.result is not None
                print(f"Szene: {flow.result.prompt_used}")
                path = flow.download(output_dir)
                print(f"Gespeichert: {path}")
                answer = await prompt("[Enter] Neues Foto, [q] Ende: ")
                if answer.strip().lower() == "q":
                    return 0
                await flow.retake()
            elif flow.state == FlowState.error:
                print(f"Ups! {flow.error_message}")
                answer = await prompt("[Enter] Erneut versuchen, [q] Ende: ")
                if answer.strip().lower() == "q":
                    return 0
                await flow.retry()
            else:
                return 0
    finally:
        flow.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Karl selfie photo booth")
    parser.add_argument("--back", action="store_true", help="start with the rear camera")
    parser.add_argument("--url", help="render endpoint (default: RENDER_URL setting)")
    parser.add_argument("--output", type=Path, default=Path("."), help="directory for saved images")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    controller = CameraController()
    if not asyncio.run(controller.check_access()):
        print("Kamerazugriff nicht möglich. Bitte erlaube den Zugriff.")
        return 1

    flow = CaptureFlow(
        controller=controller,
        render_client=RenderClient(
            render_url=args.url or settings.render_url,
            timeout=settings.client_timeout_seconds,
        ),
        camera_config=CameraConfig(
            facing_mode=FacingMode.back if args.back else FacingMode.front,
            width=settings.camera_width,
            height=settings.camera_height,
        ),
        ready_timeout=settings.camera_ready_timeout_seconds,
    )
    try:
        return asyncio.run(run_booth(flow, args.output))
    except (KeyboardInterrupt, EOFError):
        logger.info("Booth stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
