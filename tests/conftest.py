import os
import shutil
import subprocess

import pytest
from PIL import Image


class FakeEngine:
    """Stands in for ffprobe/ffmpeg: answers probes and writes real files"""

    def __init__(self, width=1920):
        self.width = width
        self.calls = []
        self.fail_inputs = set()
        self.interrupt_on_encode = False
        # Raw stderr bytes per failing input, decoded like subprocess.run does
        self.stderr_bytes = {}

    def __call__(self, cmd, stdout=None, stderr=None, text=False, errors=None):
        self.calls.append({'cmd': list(cmd), 'stdout': stdout, 'stderr': stderr, 'errors': errors})
        if os.path.basename(cmd[0]) == 'ffprobe':
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{self.width}\n", stderr='')

        source = cmd[cmd.index('-i') + 1]
        target = cmd[-1]
        if '-vf' in cmd:
            Image.new('RGB', (16, 16), 'green').save(target)
            return subprocess.CompletedProcess(cmd, 0, stdout=None, stderr=None)

        if self.interrupt_on_encode:
            raise KeyboardInterrupt
        name = os.path.basename(source)
        if name in self.fail_inputs:
            raw = self.stderr_bytes.get(name, b'Invalid data found')
            return subprocess.CompletedProcess(cmd, 1, stdout='', stderr=raw.decode('utf-8', errors or 'strict'))
        frames = [Image.new('RGB', (32, 18), color) for color in ('red', 'blue', 'white')]
        frames[0].save(target, save_all=True, append_images=frames[1:], duration=66)
        return subprocess.CompletedProcess(cmd, 0, stdout=None, stderr=None)

    @property
    def ffmpeg_calls(self):
        return [c for c in self.calls if os.path.basename(c['cmd'][0]) == 'ffmpeg']


@pytest.fixture
def engine(monkeypatch):
    fake = FakeEngine()
    monkeypatch.setattr(subprocess, 'run', fake)
    monkeypatch.setattr(shutil, 'which', lambda name: f"/usr/bin/{name}")
    return fake


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path
