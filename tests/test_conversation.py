import pytest
from fastapi.testclient import TestClient
from google.api_core import exceptions as gexc

from conftest import FakeGenerator, FakePublisher, FakeSynthesizer, FakeTranscriber
from vibe.errors import StorageUnavailable
from vibe.gateway import CLARIFICATION_REPLY
from vibe.main import create_app

TEN_MB = 10 * 1024 * 1024


def voice_upload(data: bytes = b"\x1aE\xdf\xa3webm", content_type: str = "audio/webm"):
    return {"audio": ("recording.webm", data, content_type)}


# Text turns

@pytest.mark.parametrize("length", [1, 17, 999, 1000])
def test_text_turn_accepts_messages_up_to_limit(client, services, length):
    res = client.post("/conversation/text", json={"message": "a" * length, "personality": "young_friend"})
    assert res.status_code == 200
    body = res.json()
    assert body["response"] == "Hello from VIBE!"
    assert body["ttsAudioUrl"].startswith("https://storage.example.test/tts-audio/tts_")
    assert services.generator.calls == ["a" * length]


@pytest.mark.parametrize(
    "payload",
    [
        {"message": ""},
        {"message": "   "},
        {"message": "a" * 1001},
        {"message": 42},
        {"personality": "young_friend"},
    ],
)
def test_text_turn_rejects_invalid_message_without_generating(client, services, payload):
    res = client.post("/conversation/text", json=payload)
    assert res.status_code == 400
    assert set(res.json()) == {"error", "message"}
    assert services.generator.calls == []


def test_text_turn_too_long_message(client):
    res = client.post("/conversation/text", json={"message": "x" * 1001})
    assert res.json() == {"error": "Message too long", "message": "Message must be less than 1000 characters."}


def test_text_turn_without_body_is_bad_request(client):
    res = client.post("/conversation/text", content=b"not json", headers={"content-type": "application/json"})
    assert res.status_code == 400


def test_text_turn_demo_mode_without_generator(settings, services):
    services.generator = None
    client = TestClient(create_app(settings, services))
    res = client.post("/conversation/text", json={"message": "hi"})
    assert res.status_code == 200
    assert res.json()["response"] == 'You said: "hi". I\'m currently in demo mode, but I\'m here to chat!'


@pytest.mark.parametrize(
    "error, status",
    [
        (ConnectionRefusedError("refused"), 503),
        (gexc.ServiceUnavailable("down"), 503),
        (gexc.Unauthenticated("bad key"), 401),
        (gexc.PermissionDenied("nope"), 401),
        (gexc.ResourceExhausted("slow down"), 429),
        (RuntimeError("daily quota reached"), 429),
        (gexc.InvalidArgument("bad prompt"), 400),
        (RuntimeError("boom"), 500),
    ],
)
def test_generation_errors_are_classified(settings, services, error, status):
    services.generator = FakeGenerator(error=error)
    client = TestClient(create_app(settings, services))
    res = client.post("/conversation/text", json={"message": "hello"})
    assert res.status_code == status
    body = res.json()
    assert body["error"] == "AI response generation failed"
    # No upstream detail in production
    assert "detail" not in body
    assert str(error) not in body["message"]


def test_generation_error_detail_outside_production(settings, services):
    settings.environment = "development"
    services.generator = FakeGenerator(error=RuntimeError("boom"))
    client = TestClient(create_app(settings, services))
    body = client.post("/conversation/text", json={"message": "hello"}).json()
    assert "boom" in body["detail"]


@pytest.mark.parametrize(
    "synthesizer, publisher",
    [
        (FakeSynthesizer(error=RuntimeError("tts down")), FakePublisher()),
        (FakeSynthesizer(), FakePublisher(error=StorageUnavailable("bucket missing"))),
        (None, FakePublisher()),
        (FakeSynthesizer(), None),
    ],
)
def test_speech_failures_degrade_to_null_audio(settings, services, synthesizer, publisher):
    services.synthesizer = synthesizer
    services.publisher = publisher
    client = TestClient(create_app(settings, services))
    res = client.post("/conversation/text", json={"message": "hello"})
    assert res.status_code == 200
    assert res.json() == {"response": "Hello from VIBE!", "ttsAudioUrl": None}


def test_published_audio_is_mp3(client, services):
    client.post("/conversation/text", json={"message": "hello"})
    data, filename, content_type = services.publisher.published[0]
    assert data == b"ID3-fake-mp3"
    assert filename.endswith(".mp3")
    assert content_type == "audio/mpeg"
    assert services.synthesizer.texts == ["Hello from VIBE!"]


# Voice turns

def test_voice_turn_transcribes_and_replies(client, services):
    res = client.post("/conversation/voice", files=voice_upload(), data={"personality": "young_friend", "language": "english"})
    assert res.status_code == 200
    body = res.json()
    assert body["transcription"] == "how are you"
    assert body["response"] == "Hello from VIBE!"
    assert body["ttsAudioUrl"].startswith("https://storage.example.test/")
    assert services.generator.calls == ["how are you"]
    assert services.transcriber.contents == [b"\x1aE\xdf\xa3webm"]


def test_voice_turn_deletes_staged_file(client, services):
    client.post("/conversation/voice", files=voice_upload())
    (path,) = services.transcriber.paths
    assert path.suffix == ".webm"
    assert not path.exists()


def test_voice_turn_deletes_staged_file_when_transcription_fails(settings, services):
    services.transcriber = FakeTranscriber(error=gexc.InvalidArgument("bad audio"))
    client = TestClient(create_app(settings, services))
    res = client.post("/conversation/voice", files=voice_upload())
    assert res.status_code == 400
    assert res.json()["error"] == "Speech recognition failed"
    assert not services.transcriber.paths[0].exists()
    assert services.generator.calls == []


@pytest.mark.parametrize("transcript", ["", "   \n"])
def test_empty_transcription_short_circuits(settings, services, transcript):
    services.transcriber = FakeTranscriber(transcript=transcript)
    client = TestClient(create_app(settings, services))
    res = client.post("/conversation/voice", files=voice_upload())
    assert res.status_code == 200
    assert res.json() == {"transcription": "", "response": CLARIFICATION_REPLY, "ttsAudioUrl": None}
    assert services.generator.calls == []
    assert services.synthesizer.texts == []


def test_oversized_audio_rejected_before_transcription(client, services):
    res = client.post("/conversation/voice", files=voice_upload(b"\0" * (TEN_MB + 1)))
    assert res.status_code == 400
    assert res.json()["error"] == "File too large"
    assert services.transcriber.paths == []


def test_audio_at_limit_is_accepted(client, services):
    res = client.post("/conversation/voice", files=voice_upload(b"\0" * TEN_MB))
    assert res.status_code == 200
    assert len(services.transcriber.contents[0]) == TEN_MB


def test_non_audio_upload_rejected(client, services):
    res = client.post("/conversation/voice", files=voice_upload(b"hello", "text/plain"))
    assert res.status_code == 400
    assert services.transcriber.paths == []


def test_missing_audio_rejected(client, services):
    res = client.post("/conversation/voice", data={"personality": "young_friend"})
    assert res.status_code == 400
    assert res.json()["error"] == "No audio file uploaded"


def test_voice_unavailable_without_transcriber(settings, services):
    services.transcriber = None
    client = TestClient(create_app(settings, services))
    res = client.post("/conversation/voice", files=voice_upload())
    assert res.status_code == 503
    assert "try text input" in res.json()["message"]


def test_voice_tts_failure_still_succeeds(settings, services):
    services.synthesizer = FakeSynthesizer(error=RuntimeError("tts down"))
    client = TestClient(create_app(settings, services))
    res = client.post("/conversation/voice", files=voice_upload())
    assert res.status_code == 200
    assert res.json()["ttsAudioUrl"] is None
    assert res.json()["transcription"] == "how are you"
