import pytest

from model_config import InMemoryConfigStore

LONG_B64 = "A" * 600


class FakeTokenCache:
    def __init__(self, token="test-access-token"):
        self.token = token
        self.calls = 0

    async def get_token(self):
        self.calls += 1
        return self.token


class FakeVendorClient:
    """Returns queued responses in order; an Exception in the queue is raised."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def generate(self, descriptor, body):
        self.calls.append((descriptor, body))
        if not self.responses:
            raise AssertionError(f"Unexpected vendor call for {descriptor.model_id}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingConfigStore(InMemoryConfigStore):
    """In-memory store that remembers which model configs were loaded."""

    def __init__(self, configs=None, pipeline=None):
        super().__init__(configs, pipeline)
        self.loads = []

    async def load_config(self, model_id):
        self.loads.append(model_id)
        return await super().load_config(model_id)


def text_response(text):
    return {"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]}


def image_response(data=LONG_B64):
    return {
        "candidates": [
            {"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": data}}]}}
        ]
    }


@pytest.fixture
def token_cache():
    return FakeTokenCache()


@pytest.fixture
def config_store():
    return RecordingConfigStore()
