"""
Pytest configuration and fixtures
"""

import pytest
import httpx
from typing import Callable, Dict, List

from core.config import Settings
from migration.auth import Credential
from migration.bus import EventBus, Topic
from migration.circuit_breaker import CircuitBreaker
from migration.gateway import ResilientGateway
from migration.tracker import CompletionTracker
from schemas.location import LocationTag

DESTINATION = "http://destination.test"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from .env with a zero dispatch interval"""
    return Settings(
        _env_file=None,
        ACCESS_TOKEN="test-token",
        OAUTH_TOKEN_URL=None,
        DATA_LIMIT=2,
        REQUEST_INTERVAL=0,
        REQUEST_TIMEOUT=2000,
        WORKER_POOL_SIZE=2,
        DATA_DIRECTORY=str(tmp_path / "artifacts"),
        SOURCE_FILE=None,
        USERS_FILE=None,
        GENERATE_TEAMS="",
        LOCATION_HIERARCHY="",
        USER_GROUP_ID=None,
        LOCATION_TAG_URL=f"{DESTINATION}/location-tag",
        LOCATION_URL=f"{DESTINATION}/location/add",
        ORGANIZATION_URL=f"{DESTINATION}/organization",
        ORGANIZATION_LOCATION_URL=f"{DESTINATION}/organization/assignLocationsAndPlans",
        USERS_URL=f"{DESTINATION}/users",
        USER_GROUP_URL=f"{DESTINATION}/users/{{user_id}}/groups/{{group_id}}",
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def completions(bus) -> List:
    """Stages announced on STAGE_COMPLETE, in order"""
    received = []
    bus.subscribe(Topic.STAGE_COMPLETE, received.append)
    return received


@pytest.fixture
def tracker(bus) -> CompletionTracker:
    return CompletionTracker(bus)


@pytest.fixture
def location_tags() -> Dict[str, LocationTag]:
    """Destination tags keyed by name"""
    tags = [
        LocationTag(id=1, name="Country"),
        LocationTag(id=2, name="Province"),
        LocationTag(id=3, name="District"),
    ]
    return {tag.name: tag for tag in tags}


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic identifiers: loc-1, loc-2, ..."""
    counter = {"value": 0}

    def next_id() -> str:
        counter["value"] += 1
        return f"loc-{counter['value']}"

    return next_id


@pytest.fixture
def make_gateway():
    """Build a gateway whose HTTP traffic is answered by ``handler``"""
    gateways = []

    def build(handler, credential=Credential("test-token"), **breaker_kwargs) -> ResilientGateway:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        gateway = ResilientGateway(client, CircuitBreaker("test", **breaker_kwargs), credential)
        gateways.append(gateway)
        return gateway

    return build


@pytest.fixture
def locations_csv(tmp_path):
    path = tmp_path / "locations.csv"
    path.write_text(
        "Country Id,Country,Province Id,Province\n"
        ",Kenya,,Nairobi\n"
        ",Kenya,,Mombasa\n"
        ",Kenya,,Nairobi\n"
    )
    return path


@pytest.fixture
def users_csv(tmp_path):
    path = tmp_path / "users.csv"
    path.write_text(
        "parent_location,location,username,first_name,last_name,email,password\n"
        "Kenya,Nairobi,alice,Alice,Wanjiru,alice@example.org,secret1\n"
        "Kenya,Nairobi,bob,Bob,Otieno,,secret2\n"
        "Kenya,Mombasa,carol,Carol,Achieng,carol@example.org,\n"
    )
    return path
