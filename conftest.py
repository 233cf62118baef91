"""Global pytest configuration.

Tests marked ``gpu`` need a working OpenCL device and are skipped when the
platform query finds none. Everything else runs on the host only.
"""

import os

import pytest

# Keep external plugins from interfering with stdout capture of report lines.
os.environ.setdefault("PYTEST_DISABLE_PLUGIN_AUTOLOAD", "1")
os.environ.setdefault("PYOPENCL_NO_CACHE", "1")


def _devices():
    from clbench.accelerator import list_devices

    return list_devices()


def pytest_collection_modifyitems(config, items):
    if not any("gpu" in item.keywords for item in items):
        return
    if _devices():
        return
    skip_gpu = pytest.mark.skip(reason="No OpenCL device available")
    for item in items:
        if "gpu" in item.keywords:
            item.add_marker(skip_gpu)


@pytest.fixture(scope="session")
def cl_context():
    """Context on the default device, shared by all accelerator tests."""
    from clbench.accelerator import AcceleratorContext, choose_device

    devices = _devices()
    if not devices:
        pytest.skip("No OpenCL device available")
    with AcceleratorContext(choose_device()) as ctx:
        yield ctx
