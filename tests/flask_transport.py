"""requests transport adapter that routes calls into a Flask test client instead of the network."""
from urllib.parse import urlsplit

import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers

BASE_URL = "http://testserver"


class FlaskAdapter(BaseAdapter):
    def __init__(self, app):
        super().__init__()
        self.client = app.test_client()

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        parts = urlsplit(request.url)
        headers = {k: v for k, v in request.headers.items() if k.lower() != "content-length"}
        body = request.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        flask_resp = self.client.open(
            parts.path,
            method=request.method,
            query_string=parts.query,
            headers=headers,
            data=body or b"",
        )

        resp = requests.Response()
        resp.status_code = flask_resp.status_code
        resp.reason = flask_resp.status.partition(" ")[2]
        resp.headers = CaseInsensitiveDict(flask_resp.headers.items())
        resp._content = flask_resp.get_data()
        resp._content_consumed = True
        resp.encoding = get_encoding_from_headers(resp.headers)
        resp.url = request.url
        resp.request = request
        flask_resp.close()
        return resp

    def close(self):
        pass


def session_for(app) -> requests.Session:
    session = requests.Session()
    session.mount(BASE_URL, FlaskAdapter(app))
    return session


class UnreachableAdapter(BaseAdapter):
    """Fails every request the way requests does when nothing listens on the port."""

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        raise requests.ConnectionError(f"Connection refused: {request.url}", request=request)

    def close(self):
        pass


def unreachable_session() -> requests.Session:
    session = requests.Session()
    session.mount(BASE_URL, UnreachableAdapter())
    return session
