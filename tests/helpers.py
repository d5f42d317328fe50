"""Stand-ins for aiohttp objects shared by provider and plugin tests."""

import json


class FakeResponse:
    def __init__(self, status: int, body):
        self.status = status
        self.body = body if isinstance(body, str) else json.dumps(body)

    async def text(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; replays canned responses in order.

    A callable item is called with the recorded request and must return the
    response, which lets concurrent tests answer per request.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []
        self.closed = False

    def request(self, method, url, params=None, json=None, headers=None, auth=None, timeout=None):
        request = {"method": method, "url": url, "params": params, "json": json, "headers": headers, "auth": auth}
        self.requests.append(request)
        item = self.responses.pop(0) if self.responses else None
        if callable(item):
            item = item(request)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, json=None, headers=None, timeout=None):
        return self.request("POST", url, json=json, headers=headers, timeout=timeout)

    async def close(self):
        self.closed = True
