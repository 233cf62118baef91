"""Host-only doubles for the accelerator executor and the trial clock."""

import logging
from contextlib import contextmanager

import numpy as np
import pytest

from clbench.exceptions import AcceleratorError
from clbench.workloads import MatMulWorkload


class FakeClock:
    """Advances by ``step`` seconds on every reading."""

    def __init__(self, step=0.5):
        self.step = step
        self.now = 0.0

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


class FakeExecutor:
    """Runs variants with numpy; ``corrupt`` maps variant names to damage.

    For products the damage is a fraction of elements to double, for sums an
    offset added to the result. Variants named in ``faults`` raise
    ``AcceleratorError`` on launch. When a ``clock`` is given, every upload
    advances it by ``upload_s``.
    """

    def __init__(self, corrupt=None, faults=(), clock=None, upload_s=0.0):
        self.corrupt = corrupt or {}
        self.faults = set(faults)
        self.clock = clock
        self.upload_s = upload_s
        self.calls = []
        self.uploads = []
        self.sessions = []
        self.active = None
        self._staged = None

    @contextmanager
    def variant_session(self, variant):
        self.active = variant
        self.sessions.append(variant.name)
        try:
            yield
        finally:
            self.active = None

    def upload(self, variant, workload):
        assert self.active == variant, "upload called outside its variant session"
        self.uploads.append(variant.name)
        if self.clock is not None:
            self.clock.now += self.upload_s
        self._staged = workload

    def launch(self, variant, workload):
        assert self.active == variant, "launch called outside its variant session"
        assert self._staged is workload, "launch called without an upload"
        self._staged = None
        self.calls.append(variant.name)
        if variant.name in self.faults:
            raise AcceleratorError(
                f"Failed to launch kernel '{variant.entry_point}'",
                stage="launch",
                kernel_name=variant.entry_point,
            )
        damage = self.corrupt.get(variant.name)
        if isinstance(workload, MatMulWorkload):
            out = (workload.a.astype(np.float64) @ workload.b.astype(np.float64)).astype(np.float32)
            if damage:
                flat = out.reshape(-1)
                flat[: int(flat.size * damage)] *= 2.0
            return out
        total = int(workload.values.sum(dtype=np.uint64))
        return (total + (damage or 0)) & 0xFFFFFFFF


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def make_executor():
    return FakeExecutor


@pytest.fixture(autouse=True)
def _reset_logging():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    root.setLevel(level)
    for handler in [h for h in root.handlers if h not in before]:
        root.removeHandler(handler)
        handler.close()
