import os
import subprocess
import tempfile
import wave
from pathlib import Path

import anyio

from .base import Synthesizer


def _decode(stream) -> str:
    return stream.decode("utf-8", errors="ignore") if stream else ""


class PiperSynthesizer(Synthesizer):
    """Local synthesis through the Piper executable; produces WAV."""

    name = "piper"
    content_type = "audio/wav"
    extension = "wav"

    def __init__(self, piper_path: str, voice_path: str, timeout: int = 120):
        if not piper_path or not voice_path:
            raise RuntimeError("PIPER_PATH and PIPER_VOICE must be set in environment")
        self.piper_path = Path(piper_path)
        self.voice_path = Path(voice_path)
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "PiperSynthesizer":
        return cls(os.getenv("PIPER_PATH", ""), os.getenv("PIPER_VOICE", ""))

    def _command(self, out_path: str) -> list:
        # Pass the accompanying JSON config explicitly when present
        json_guess = self.voice_path.with_suffix(self.voice_path.suffix + ".json")  # e.g., .onnx.json
        cmd = [str(self.piper_path), "-m", str(self.voice_path)]
        if json_guess.exists():
            cmd += ["-c", str(json_guess)]
        cmd += ["-f", out_path]
        return cmd

    def _environment(self) -> dict:
        # Piper looks for espeak-ng-data next to the executable
        env = os.environ.copy()
        if "ESPEAK_DATA_PATH" not in env:
            data_dir = self.piper_path.parent / "espeak-ng-data"
            if data_dir.exists():
                env["ESPEAK_DATA_PATH"] = str(data_dir)
        return env

    def _run(self, text: str) -> bytes:
        with tempfile.NamedTemporaryFile(delete=False, suffix=".wav") as tmp_out:
            out_path = tmp_out.name

        cmd = self._command(out_path)
        try:
            result = subprocess.run(
                cmd,
                check=True,
                capture_output=True,
                cwd=str(self.piper_path.parent),
                env=self._environment(),
                timeout=self.timeout,
                input=(text.strip() + "\n").encode("utf-8"),  # ensure newline-terminated stdin
            )

            # Validate WAV has frames (not just a header)
            try:
                with wave.open(out_path, "rb") as wf:
                    frames = wf.getnframes()
            except (wave.Error, EOFError):
                frames = 0
            if frames <= 0:
                raise RuntimeError(
                    "Piper returned an empty WAV. Check that the voice .onnx and .onnx.json match.\n"
                    f"stdout: {_decode(result.stdout)}\nstderr: {_decode(result.stderr)}"
                )

            with open(out_path, "rb") as f:
                return f.read()
        except subprocess.CalledProcessError as e:
            msg = _decode(e.stderr) or _decode(e.stdout) or f"Piper exited with code {e.returncode}. Command: {' '.join(cmd)}"
            raise RuntimeError(msg) from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeError(f"Piper timed out after {self.timeout}s.") from e
        finally:
            try:
                os.remove(out_path)
            except FileNotFoundError:
                pass

    async def synthesize(self, text: str) -> bytes:
        return await anyio.to_thread.run_sync(self._run, text)
