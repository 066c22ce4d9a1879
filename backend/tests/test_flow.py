"""Tests for the capture/selection state machine."""
import asyncio
from pathlib import Path
from typing import Optional

import pytest

from karl_selfie.client.camera import CameraController
from karl_selfie.client.flow import (
    CAMERA_NOT_READY_MESSAGE,
    MISSING_SCENE_MESSAGE,
    TRANSITIONS,
    CaptureFlow,
    FlowEvent,
    FlowState,
    InvalidTransition,
)
from karl_selfie.core.errors import RenderRequestFailed

from fakes import GENERATED_IMAGE, FakeBackend, FakeRenderClient


def _flow(backend: Optional[FakeBackend] = None, render_client: Optional[FakeRenderClient] = None) -> CaptureFlow:
    controller = CameraController(
        backend=backend or FakeBackend(devices=(0, 1)),
        surface_poll_interval=0,
        ready_poll_interval=0.001,
    )
    return CaptureFlow(controller, render_client or FakeRenderClient(), ready_timeout=0.2)


async def _captured(render_client: Optional[FakeRenderClient] = None) -> CaptureFlow:
    flow = _flow(render_client=render_client)
    await flow.grant()
    await flow.capture()
    assert flow.state == FlowState.selecting_scene
    return flow


class TestTransitionTable:
    def test_error_reachable_only_from_camera_and_processing(self) -> None:
        sources = {state for (state, _), targets in TRANSITIONS.items() if FlowState.error in targets}
        assert sources == {FlowState.camera, FlowState.processing}

    def test_result_reachable_only_from_processing(self) -> None:
        sources = {
            state
            for (state, event), targets in TRANSITIONS.items()
            if FlowState.result in targets and event != FlowEvent.download
        }
        assert sources == {FlowState.processing}

    def test_can(self) -> None:
        flow = _flow()
        assert flow.can(FlowEvent.grant)
        assert not flow.can(FlowEvent.capture)


class TestGrant:
    async def test_grant_starts_live_preview(self) -> None:
        backend = FakeBackend(devices=(0, 1))
        flow = _flow(backend)

        assert flow.state == FlowState.permission
        assert await flow.grant()

        assert flow.state == FlowState.camera
        assert flow.handle is not None and flow.handle.active
        assert flow.surface.has_dimensions
        assert flow.has_multiple_cameras

    async def test_camera_failure_moves_to_error(self) -> None:
        backend = FakeBackend(devices=(0,), failing=(0,))
        flow = _flow(backend)

        assert not await flow.grant()

        assert flow.state == FlowState.error
        assert flow.error_message.startswith("Kamerafehler: ")
        assert flow.handle is None

    async def test_no_frames_times_out_and_releases(self) -> None:
        backend = FakeBackend(devices=(0,), no_frames=True)
        flow = _flow(backend)

        assert not await flow.grant()

        assert flow.state == FlowState.error
        assert "timeout" in flow.error_message.lower()
        assert backend.open_devices == []


class TestInvalidTransitions:
    async def test_capture_before_grant(self) -> None:
        with pytest.raises(InvalidTransition):
            await _flow().capture()

    async def test_submit_from_camera(self) -> None:
        flow = _flow()
        await flow.grant()
        with pytest.raises(InvalidTransition):
            await flow.submit(custom_prompt="Karl angelt")

    async def test_retake_from_camera(self) -> None:
        flow = _flow()
        await flow.grant()
        with pytest.raises(InvalidTransition):
            await flow.retake()

    def test_download_without_result(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidTransition):
            _flow().download(tmp_path)


class TestSwitchDevice:
    async def test_switch_toggles_facing_and_releases_previous(self) -> None:
        backend = FakeBackend(devices=(0, 1))
        flow = _flow(backend)
        await flow.grant()
        first = flow.handle

        assert await flow.switch_device()

        assert flow.state == FlowState.camera
        assert flow.facing_mode.value == "environment"
        assert flow.handle is not None and flow.handle.device_index == 1
        assert first is not None and not first.active
        assert len(backend.open_devices) == 1

    async def test_overlapping_switches_keep_one_device_open(self) -> None:
        backend = FakeBackend(devices=(0, 1))
        flow = _flow(backend)
        await flow.grant()

        results = await asyncio.gather(flow.switch_device(), flow.switch_device())

        assert results == [True, True]
        assert backend.max_open == 1
        assert [d.index for d in backend.open_devices] == [flow.handle.device_index]
        flow.close()
        assert backend.open_devices == []

    async def test_multiple_cameras_counted_before_opening(self) -> None:
        backend = FakeBackend(devices=(0, 1), exclusive=True)
        flow = _flow(backend)

        await flow.grant()

        assert flow.has_multiple_cameras
        assert await flow.switch_device()
        assert flow.has_multiple_cameras


class TestClose:
    async def test_close_during_start_releases_new_device(self) -> None:
        backend = FakeBackend(devices=(0, 1))
        flow = _flow(backend)

        task = asyncio.create_task(flow.grant())
        await asyncio.sleep(0)
        flow.close()

        assert not await task
        assert flow.state == FlowState.camera
        assert flow.handle is None
        assert backend.open_devices == []


class TestCapture:
    async def test_capture_moves_to_scene_selection_and_releases_camera(self) -> None:
        backend = FakeBackend(devices=(0, 1))
        flow = _flow(backend)
        await flow.grant()

        assert await flow.capture()

        assert flow.state == FlowState.selecting_scene
        assert flow.photo is not None
        assert (flow.photo.width, flow.photo.height) == (64, 48)
        assert flow.handle is None
        assert backend.open_devices == []

    async def test_capture_refused_while_not_ready(self) -> None:
        flow = _flow()
        await flow.grant()
        flow.surface.attach(flow.handle)

        assert not await flow.capture()

        assert flow.state == FlowState.camera
        assert flow.validation_message == CAMERA_NOT_READY_MESSAGE
        assert flow.photo is None

    async def test_concurrent_capture_runs_once(self) -> None:
        flow = _flow()
        await flow.grant()

        results = await asyncio.gather(flow.capture(), flow.capture())

        assert sorted(results) == [False, True]
        assert flow.state == FlowState.selecting_scene


class TestSubmit:
    async def test_scene_submission_reaches_result(self) -> None:
        render_client = FakeRenderClient()
        flow = await _captured(render_client)

        assert await flow.submit(scene_id=2)

        assert flow.state == FlowState.result
        assert flow.result is not None
        assert flow.result.prompt_used == "scene 2"
        assert render_client.calls == [(flow.photo, None, 2)]

    async def test_custom_prompt_wins_over_scene(self) -> None:
        render_client = FakeRenderClient()
        flow = await _captured(render_client)

        await flow.submit(custom_prompt="  Karl angelt  ", scene_id=3)

        assert render_client.calls[0][1:] == ("Karl angelt", None)

    @pytest.mark.parametrize("custom_prompt", [None, "", "   "])
    async def test_missing_scene_keeps_selection(self, custom_prompt: Optional[str]) -> None:
        render_client = FakeRenderClient()
        flow = await _captured(render_client)

        assert not await flow.submit(custom_prompt=custom_prompt)

        assert flow.state == FlowState.selecting_scene
        assert flow.validation_message == MISSING_SCENE_MESSAGE
        assert render_client.calls == []

    async def test_processing_while_request_in_flight(self) -> None:
        render_client = FakeRenderClient(block=True)
        flow = await _captured(render_client)

        task = asyncio.create_task(flow.submit(scene_id=1))
        await asyncio.sleep(0)
        assert flow.state == FlowState.processing

        render_client.release.set()
        assert await task
        assert flow.state == FlowState.result

    async def test_concurrent_submit_sends_once(self) -> None:
        render_client = FakeRenderClient(block=True)
        flow = await _captured(render_client)

        first = asyncio.create_task(flow.submit(scene_id=1))
        await asyncio.sleep(0)
        assert not await flow.submit(scene_id=1)
        render_client.release.set()

        assert await first
        assert len(render_client.calls) == 1

    async def test_failure_shows_hint_and_keeps_photo(self) -> None:
        error = RenderRequestFailed("Image rejected by safety system (SAFETY)", status_code=500)
        flow = await _captured(FakeRenderClient(error=error))

        assert not await flow.submit(scene_id=1)

        assert flow.state == FlowState.error
        assert "Sicherheitssystem" in flow.error_message
        assert flow.photo is not None

    async def test_unknown_failure_message_passes_through(self) -> None:
        error = RenderRequestFailed("No image data in generation response", status_code=500)
        flow = await _captured(FakeRenderClient(error=error))

        await flow.submit(scene_id=1)

        assert flow.error_message == "No image data in generation response"


class TestRetry:
    async def test_retry_with_photo_returns_to_selection(self) -> None:
        error = RenderRequestFailed("Request timed out", status_code=504)
        render_client = FakeRenderClient(error=error)
        flow = await _captured(render_client)
        await flow.submit(scene_id=1)

        assert await flow.retry()

        assert flow.state == FlowState.selecting_scene
        assert flow.error_message == ""
        render_client.error = None
        assert await flow.submit(scene_id=1)
        assert len(render_client.calls) == 2

    async def test_retry_without_photo_restarts_camera(self) -> None:
        backend = FakeBackend(devices=(0,), failing=(0,))
        flow = _flow(backend)
        await flow.grant()
        assert flow.state == FlowState.error

        backend.failing.clear()
        assert await flow.retry()

        assert flow.state == FlowState.camera
        assert flow.surface.has_dimensions


class TestResult:
    async def test_download_writes_png_and_keeps_state(self, tmp_path: Path) -> None:
        flow = await _captured()
        await flow.submit(scene_id=4)

        path = flow.download(tmp_path / "out")

        assert path.parent == tmp_path / "out"
        assert path.name.startswith("karl-selfie-") and path.suffix == ".png"
        assert path.read_bytes() == GENERATED_IMAGE
        assert flow.state == FlowState.result

    async def test_retake_discards_photo_and_reopens_camera(self) -> None:
        backend = FakeBackend(devices=(0, 1))
        flow = _flow(backend)
        await flow.grant()
        await flow.capture()
        await flow.submit(scene_id=4)

        assert await flow.retake()

        assert flow.state == FlowState.camera
        assert flow.photo is None
        assert flow.result is None
        assert len(backend.open_devices) == 1

    async def test_close_releases_camera(self) -> None:
        backend = FakeBackend()
        flow = _flow(backend)
        await flow.grant()

        flow.close()

        assert backend.open_devices == []
        assert flow.handle is None
