import asyncio
import contextlib
import json
import ssl
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest
import trustme

from lightbridge.bridge_client import BridgeClient
from lightbridge.config import BridgeConfig
from lightbridge.errors import BridgeUnreachable, CertificateMismatch

BRIDGE_ID = "001788FFFE123456"


class _ZoneHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        body = json.dumps({"errors": [], "data": [{"id": "z1"}]}).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        return None


@contextlib.contextmanager
def serve_bridge(server_cert):
    """Serve a canned zone listing over TLS on localhost, yielding the base URL."""

    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    server_cert.configure_cert(context)
    server = HTTPServer(("127.0.0.1", 0), _ZoneHandler)
    server.socket = context.wrap_socket(server.socket, server_side=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"https://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


@pytest.fixture
def bridge_ca():
    return trustme.CA()


@pytest.fixture
def ca_path(bridge_ca, tmp_path):
    path = tmp_path / "bridge-ca.pem"
    bridge_ca.cert_pem.write_to_path(str(path))
    return str(path)


@pytest.fixture(autouse=True)
def system_bundle(monkeypatch, tmp_path):
    """Point requests' environment bundle at an unrelated CA, as container images do."""

    path = tmp_path / "system-ca.pem"
    trustme.CA().cert_pem.write_to_path(str(path))
    monkeypatch.setenv("REQUESTS_CA_BUNDLE", str(path))
    monkeypatch.delenv("CURL_CA_BUNDLE", raising=False)
    return str(path)


def make_client(base_url, ca_path):
    config = BridgeConfig(base_url=base_url, api_key="app-key", bridge_id=BRIDGE_ID, ca_cert_path=ca_path, timeout=5)
    return BridgeClient(config)


def test_bridge_id_common_name_is_accepted_on_hostname_mismatch(bridge_ca, ca_path):
    server_cert = bridge_ca.issue_cert("hue-bridge.local", common_name=BRIDGE_ID.lower())

    with serve_bridge(server_cert) as base_url:
        client = make_client(base_url, ca_path)
        try:
            body = asyncio.run(client.fetch_groups("zone"))
        finally:
            client.close()

    assert body.data == [{"id": "z1"}]


def test_other_common_name_is_rejected(bridge_ca, ca_path):
    server_cert = bridge_ca.issue_cert("hue-bridge.local", common_name="intruder")

    with serve_bridge(server_cert) as base_url:
        client = make_client(base_url, ca_path)
        try:
            with pytest.raises(CertificateMismatch, match="intruder"):
                asyncio.run(client.fetch_groups("zone"))
        finally:
            client.close()


def test_certificate_from_another_root_is_rejected(ca_path):
    rogue_cert = trustme.CA().issue_cert("hue-bridge.local", common_name=BRIDGE_ID.lower())

    with serve_bridge(rogue_cert) as base_url:
        client = make_client(base_url, ca_path)
        try:
            with pytest.raises(BridgeUnreachable):
                asyncio.run(client.fetch_groups("zone"))
        finally:
            client.close()

