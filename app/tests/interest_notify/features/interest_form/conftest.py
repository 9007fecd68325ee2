from __future__ import annotations

from typing import Any

import httpx
import pytest

from interest_form_fakes import ENDPOINT, FakeScheduler, RecordingHandler
from interest_notify.features.interest_form.controller_interest_form import (
    InterestFormController,
)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def make_controller(scheduler: FakeScheduler):
    """MockTransport 越しに送信するコントローラを作る。"""

    def factory(
        handler: RecordingHandler,
        *,
        endpoint_url: str | None = ENDPOINT,
        **kwargs: Any,
    ) -> InterestFormController:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kwargs.setdefault("scheduler", scheduler)
        return InterestFormController(endpoint_url, client=client, **kwargs)

    return factory
