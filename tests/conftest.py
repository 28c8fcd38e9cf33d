from __future__ import annotations

import pytest

from dp2client.fake import FakePipelineApi
from dp2client.models import Script, ScriptInput, ScriptOption


def make_script() -> Script:
    return Script(
        id="test",
        href="http://localhost:8181/ws/scripts/test",
        nicename="Test script",
        description="Script used by the test-suite",
        homepage="http://daisy.org/test",
        inputs=[
            ScriptInput(name="source", sequence=True),
            ScriptInput(name="stylesheets", sequence=True, required=False),
        ],
        options=[
            ScriptOption(name="mods", sequence=True),
            ScriptOption(name="assert-valid", type="boolean"),
        ],
    )


@pytest.fixture
def script() -> Script:
    return make_script()


@pytest.fixture
def fake_api(script: Script) -> FakePipelineApi:
    return FakePipelineApi(script_list=[script])
