"""Global test configuration — runs before any test module imports."""
import json
import os
from typing import Optional

# Must be set BEFORE any target_onchain imports: slowapi reads this at init
os.environ["RATELIMIT_ENABLED"] = "False"
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key-global")

import eth_abi
import httpx
import pytest
import respx

from target_onchain.config import Settings
from target_onchain.core import Frame, Product

TEST_API_KEY = os.environ["ADMIN_API_KEY"]
AUTH_HEADERS = {"X-API-Key": TEST_API_KEY}

EAS_URL = "https://eas.test/graphql"
NEYNAR_URL = "https://neynar.test"
NEYNAR_VALIDATE_URL = f"{NEYNAR_URL}/v2/farcaster/frame/validate"
BASE_URL = "https://frames.test"
RUNNING_SCHEMA = "0xrunning"
RUNNING_ATTESTER = "0xreceipts"


def pytest_configure(config):
    """Disable rate limiter after all imports."""
    try:
        from target_onchain.security import limiter
        limiter.enabled = False
    except ImportError:
        pass


# ─── Helpers ───────────────────────────────────────────────────────

def encode_string(value: str) -> str:
    """ABI-encode a single-string tuple, as EAS stores ``string verifiedCountry``."""
    return "0x" + eth_abi.encode(["string"], [value]).hex()


def attestation_item(recipient: str = "0xabc", schema: str = RUNNING_SCHEMA,
                     attester: str = RUNNING_ATTESTER, revocation_time: int = 0,
                     expiration_time: int = 0, revoked: bool = False,
                     data: str = "0x", uid: str = "0x01") -> dict:
    """One item as returned by the EAS GraphQL index."""
    return {
        "id": uid,
        "attester": attester,
        "recipient": recipient,
        "refUID": "0x" + "0" * 64,
        "revocable": True,
        "revocationTime": revocation_time,
        "revoked": revoked,
        "expirationTime": expiration_time,
        "data": data,
        "schema": {"id": schema},
    }


def neynar_action(address: Optional[str] = "0xwallet", input_text: Optional[str] = None,
                  state: Optional[str] = None) -> dict:
    action = {
        "interactor": {"fid": 42, "verifications": [address] if address else []},
        "tapped_button": {"index": 1},
    }
    if input_text is not None:
        action["input"] = {"text": input_text}
    if state is not None:
        action["state"] = {"serialized": state}
    return action


def frame_body(message_bytes: str = "0a1b2c") -> dict:
    return {
        "untrustedData": {"fid": 42, "buttonIndex": 1},
        "trustedData": {"messageBytes": message_bytes},
    }


class UpstreamStub:
    """Fake Neynar + EAS endpoints, used as a respx side effect."""

    def __init__(self):
        self.valid = True
        self.action = neynar_action()
        self.attestations: list[dict] = []
        self.eas_status = 200
        self.eas_body: Optional[dict] = None
        self.eas_error: Optional[Exception] = None
        self.eas_queries: list[str] = []
        self.neynar_calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(NEYNAR_URL):
            self.neynar_calls += 1
            return httpx.Response(200, json={"valid": self.valid, "action": self.action})
        if url.startswith(EAS_URL):
            self.eas_queries.append(json.loads(request.content)["query"])
            if self.eas_error is not None:
                raise self.eas_error
            body = self.eas_body if self.eas_body is not None else {
                "data": {"attestations": self.attestations}
            }
            return httpx.Response(self.eas_status, json=body)
        return httpx.Response(404, json={"error": "unknown host"})


class FakeStore:
    """In-memory stand-in for target_onchain.database.Database."""

    def __init__(self):
        self.frames: dict[int, Frame] = {}
        self.products: list[Product] = []
        self.reads: list[tuple] = []
        self._next_id = 1

    def add_frame(self, frame: Frame) -> Frame:
        self.frames[frame.id] = frame
        self._next_id = max(self._next_id, frame.id + 1)
        return frame

    async def get_frame(self, frame_id: int):
        self.reads.append(("frame", frame_id))
        return self.frames.get(frame_id)

    async def get_products_by_shop(self, shop: str):
        self.reads.append(("products", shop))
        return [p for p in self.products if p.shop == shop]

    async def list_frames(self, creator=None, limit=100, offset=0):
        frames = sorted(self.frames.values(), key=lambda f: f.id, reverse=True)
        if creator:
            frames = [f for f in frames if (f.creator or "").lower() == creator.lower()]
        return frames[offset:offset + limit]

    async def create_frame(self, **fields):
        frame = Frame(id=self._next_id, **fields)
        return self.add_frame(frame)

    async def update_frame(self, frame_id: int, **fields):
        frame = self.frames.get(frame_id)
        if frame is None:
            return None
        for k, v in fields.items():
            setattr(frame, k, v)
        return frame

    async def delete_frame(self, frame_id: int):
        return self.frames.pop(frame_id, None) is not None

    async def replace_products(self, shop: str, products):
        self.products = [p for p in self.products if p.shop != shop]
        for i, p in enumerate(products, start=1):
            p.id = i
            self.products.append(p)
        return [p for p in self.products if p.shop == shop]


# ─── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path):
    stores = tmp_path / "stores.json"
    stores.write_text(json.dumps([
        {"name": "Slice Merch", "creatorAddress": "0xAAA"},
        {"name": "Runners Club", "creatorAddress": "0xbbb"},
        {"name": "Merch Corner", "creatorAddress": "0xbbb"},
        {"name": "Orphan", "creatorAddress": None},
    ]))
    return Settings(
        base_url=BASE_URL,
        eas_graphql_url=EAS_URL,
        neynar_api_url=NEYNAR_URL,
        neynar_api_key="test-neynar",
        receipts_xyz_all_time_running_schema=RUNNING_SCHEMA,
        receipts_xyz_attester=RUNNING_ATTESTER,
        coinbase_country_residence_schema="0xcountry",
        coinbase_account_schema="0xaccount",
        coinbase_one_schema="0xone",
        coinbase_attester="0xcoinbase",
        stores_path=stores,
        admin_api_key=TEST_API_KEY,
    )


@pytest.fixture
def upstream():
    return UpstreamStub()


@pytest.fixture
def http(upstream):
    with respx.mock(assert_all_called=False) as router:
        router.post(NEYNAR_VALIDATE_URL).mock(side_effect=upstream)
        router.post(EAS_URL).mock(side_effect=upstream)
        yield httpx.AsyncClient()


@pytest.fixture
def store():
    return FakeStore()
