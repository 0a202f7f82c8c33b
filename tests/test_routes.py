"""HTTP surface: query handling, response shape, error mapping."""
import pytest
from fastapi.testclient import TestClient

from app import create_app
from checkpoints import CheckpointCache
from helpers import Settings

from fakes import FakeStore, folder, other, video


def make_settings(**overrides):
    values = dict(
        aws_region="us-east-1",
        aws_access_key_id="x",
        aws_secret_access_key="y",
        bucket="media",
        static_dir="/nonexistent-static-dir",
        page_size=2,
        max_page_size=50,
        signed_url_ttl=900,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def store():
    return FakeStore({
        "": [folder("clips/"), video("intro.mp4", 1000), folder("movies/"), other("notes.txt")],
        "movies/": [video(f"movies/{i}.mp4", i) for i in range(1, 6)],
    })


@pytest.fixture
def client(store):
    app = create_app(settings=make_settings(), storage=store, cache=CheckpointCache())
    with TestClient(app) as c:
        yield c


def test_root_listing_shape(client):
    resp = client.get("/api/videos")
    assert resp.status_code == 200
    body = resp.json()
    assert body['prefix'] == ""
    assert body['folders'] == ["clips/", "movies/"]
    assert body['videos'] == [{
        'key': "intro.mp4",
        'size': 1000,
        'lastModified': "2024-01-01T00:00:00+00:00",
        'streamUrl': "https://signed.example/intro.mp4?ttl=900",
    }]
    assert body['pagination'] == {
        'page': 1, 'pageSize': 2, 'totalPages': 1, 'totalVideos': 1,
        'hasNextPage': False, 'hasPrevPage': False,
    }


def test_paging_query_params(client):
    body = client.get("/api/videos", params={'prefix': "movies/", 'page': 2, 'pageSize': 2}).json()
    assert [v['key'] for v in body['videos']] == ["movies/3.mp4", "movies/4.mp4"]
    assert body['pagination']['totalPages'] == 3
    assert body['pagination']['hasNextPage'] is True
    assert body['pagination']['hasPrevPage'] is True


def test_default_page_size_from_settings(client):
    body = client.get("/api/videos", params={'prefix': "movies/"}).json()
    assert body['pagination']['pageSize'] == 2
    assert len(body['videos']) == 2


@pytest.mark.parametrize("params", [{'page': 0}, {'pageSize': 0}, {'pageSize': 51}, {'prefix': "/abs"}])
def test_invalid_request_is_400_without_store_access(client, store, params):
    resp = client.get("/api/videos", params=params)
    assert resp.status_code == 400
    assert store.list_calls == []


def test_store_failure_is_502_with_generic_message(store):
    store.fail_on_call = 1
    app = create_app(settings=make_settings(), storage=store, cache=CheckpointCache())
    with TestClient(app) as c:
        resp = c.get("/api/videos")
    assert resp.status_code == 502
    assert "retry" in resp.json()['detail']
    assert "store is down" not in resp.json()['detail']


def test_signing_failure_is_502(store):
    store.fail_sign = "intro.mp4"
    app = create_app(settings=make_settings(), storage=store, cache=CheckpointCache())
    with TestClient(app) as c:
        resp = c.get("/api/videos")
    assert resp.status_code == 502


def test_refresh_flag_rescans(client, store):
    client.get("/api/videos", params={'prefix': "movies/"})
    store.listings["movies/"].append(video("movies/9.mp4"))

    stale = client.get("/api/videos", params={'prefix': "movies/"}).json()
    fresh = client.get("/api/videos", params={'prefix': "movies/", 'refresh': "true"}).json()
    assert stale['pagination']['totalVideos'] == 5
    assert fresh['pagination']['totalVideos'] == 6


def test_stream_redirects_to_signed_url(client, store):
    resp = client.get("/api/videos/stream/movies/3.mp4", follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers['location'] == "https://signed.example/movies/3.mp4?ttl=900"
    assert store.sign_calls == [("movies/3.mp4", 900)]


def test_stream_rejects_non_video(client, store):
    resp = client.get("/api/videos/stream/notes.txt", follow_redirects=False)
    assert resp.status_code == 400
    assert store.sign_calls == []


def test_health_reports_cache(client):
    client.get("/api/videos", params={'prefix': "movies/"})
    body = client.get("/api/health").json()
    assert body['status'] == "ok"
    assert body['cache']['prefixes'] == 1


@pytest.mark.parametrize("params", [{'page': "abc"}, {'pageSize': "ten"}, {'page': "1.5"}])
def test_non_numeric_paging_is_400(client, store, params):
    resp = client.get("/api/videos", params=params)
    assert resp.status_code == 400
    assert store.list_calls == []
