# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json

from audio.frames import AudioFrame
from config import AppConfig
from constants import AUDIO_BYTES_PER_FRAME_PCM, S2C_FRAME_BYTES_TOTAL
from dictionary.models import Definition
from protocol.binary import encode_c2s_frame
from session.connection_status import ConnectionStatus
from session.gateway import GatewayResult, SessionGateway


PCM = b"\x00" * AUDIO_BYTES_PER_FRAME_PCM


class FakeCapture:
    def __init__(self) -> None:
        self.started: list[int] = []
        self.audio: list[bytes] = []

    async def start(self, run_id: int) -> None:
        self.started.append(run_id)

    async def stop(self) -> None:
        return None

    async def send_audio(self, pcm_bytes: bytes) -> None:
        self.audio.append(pcm_bytes)


class FakeLookup:
    def __init__(self) -> None:
        self.closed = False

    async def fetch(self, word: str) -> Definition:
        return Definition(word=word)

    async def close(self) -> None:
        self.closed = True


class FakeSpeech:
    def __init__(self) -> None:
        self.playback_done: list[int] = []

    async def speak(self, run_id: int, text: str) -> None:
        return None

    async def stop(self) -> None:
        return None

    def is_speaking(self) -> bool:
        return False

    def on_playback_done(self, run_id: int) -> None:
        self.playback_done.append(run_id)


def make_gateway() -> SessionGateway:
    return SessionGateway(
        config=AppConfig(),
        capture_factory=lambda config, session, runtime: FakeCapture(),
        lookup_factory=lambda config, session, runtime: FakeLookup(),
        speech_factory=lambda config, session, runtime: FakeSpeech(),
    )


def states(result: GatewayResult) -> list[dict]:
    return [m for m in result.outbound_json if m["type"] == "STATE"]


async def send(gateway: SessionGateway, msg: dict) -> None:
    await gateway.on_json_message(json.dumps(msg))
    await gateway.session.runtime.settle()


# ---------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------

def test_connect_sends_session_init():
    async def scenario() -> None:
        gateway = make_gateway()
        result = await gateway.on_ws_connect()

        init = result.outbound_json[0]
        assert init["type"] == "SESSION_INIT"
        assert init["session_id"] == gateway.session.session_id
        assert init["audio_format"]["sample_rate"] == 16000
        assert init["state"]["state"] == "IDLE"
        assert init["state"]["is_studying"] is False
        assert gateway.session.connection_status is ConnectionStatus.UP

        await gateway.on_ws_disconnect("test")

    asyncio.run(scenario())


def test_disconnect_tears_down_session():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()
        await send(gateway, {"type": "START"})

        await gateway.on_ws_disconnect("client_closed")

        assert gateway.session.connection_status is ConnectionStatus.DOWN
        assert gateway.session.lookup_adapter.closed is True

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# JSON routing
# ---------------------------------------------------------------------

def test_start_and_stop_publish_state():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()

        await send(gateway, {"type": "START"})
        published = states(gateway.drain_outbound())
        assert published[-1]["state"] == "LISTENING"
        assert published[-1]["is_studying"] is True
        assert gateway.session.capture_adapter.started == [1]

        await send(gateway, {"type": "STOP"})
        published = states(gateway.drain_outbound())
        assert published[-1]["state"] == "IDLE"
        assert published[-1]["is_studying"] is False

        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


def test_mic_permission_answer_resolves_broker():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()

        await send(gateway, {"type": "MIC_PERMISSION", "granted": True})

        assert gateway.session.permissions.has_permission is True
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


def test_playback_done_reaches_speech_adapter():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()

        await send(gateway, {"type": "PLAYBACK_DONE", "run_id": 5})
        await send(gateway, {"type": "PLAYBACK_DONE", "run_id": "5"})

        assert gateway.session.speech_adapter.playback_done == [5]
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


def test_client_capture_error_not_authorized_is_fatal():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()
        gateway.session.permissions.resolve(True)
        await send(gateway, {"type": "START"})
        gateway.drain_outbound()

        await send(gateway, {"type": "CAPTURE_ERROR", "kind": "not_authorized"})

        published = states(gateway.drain_outbound())
        assert published[-1]["state"] == "ERROR"
        assert published[-1]["message"] == "Microphone access required. Please enable in Settings."
        assert published[-1]["is_studying"] is False
        assert gateway.session.permissions.has_permission is False
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


def test_interruption_messages_reach_runtime():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()
        await send(gateway, {"type": "START"})

        await send(gateway, {"type": "LIFECYCLE", "signal": "WILL_SUSPEND"})

        assert gateway.session.runtime.state.interrupted is True
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


def test_unknown_and_malformed_messages_are_dropped():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()
        gateway.drain_outbound()

        await gateway.on_json_message("{not json")
        await gateway.on_json_message("[1, 2]")
        await send(gateway, {"type": "DANCE"})

        assert gateway.session.runtime.study_state.__class__.__name__ == "Idle"
        assert not gateway.drain_outbound()
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Binary audio
# ---------------------------------------------------------------------

def test_mic_frames_reach_capture_while_listening():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()
        await send(gateway, {"type": "START"})

        await gateway.on_binary_message(encode_c2s_frame(sequence_num=1, pcm_bytes=PCM))
        await gateway.on_binary_message(encode_c2s_frame(sequence_num=4, pcm_bytes=PCM))  # gap
        await gateway.on_binary_message(b"\x01\x00")  # malformed

        assert gateway.session.capture_adapter.audio == [PCM, PCM]
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


def test_mic_frames_dropped_while_idle():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()

        await gateway.on_binary_message(encode_c2s_frame(sequence_num=1, pcm_bytes=PCM))

        assert gateway.session.capture_adapter.audio == []
        assert gateway.session.audio_in_queue.is_empty()
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

def test_drain_outbound_encodes_speech_frames():
    async def scenario() -> None:
        gateway = make_gateway()
        await gateway.on_ws_connect()
        gateway.drain_outbound()

        gateway.session.audio_out_queue.enqueue(
            AudioFrame(sequence_num=1, pcm_bytes=PCM, ts_ms=0, run_id=2)
        )
        result = gateway.drain_outbound()

        assert result.outbound_json == ()
        assert len(result.outbound_binary) == 1
        assert len(result.outbound_binary[0]) == S2C_FRAME_BYTES_TOTAL
        assert result.outbound_binary[0][4:8] == (2).to_bytes(4, "little")
        assert not gateway.drain_outbound()
        await gateway.on_ws_disconnect()

    asyncio.run(scenario())
