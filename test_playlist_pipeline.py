import datetime
import json
import os
import unittest

import httpx

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from spotify_session.auth import SpotifyOAuth
from spotify_session.client import SpotifyHttpClient
from spotify_session.playlist_pipeline import (
    DEFAULT_DESCRIPTION,
    Created,
    CreatedTracksFailed,
    Failed,
    PlaylistCreationPipeline,
    TrackSelection,
    build_playlist_name,
)
from spotify_session.token_lifecycle import TokenLifecycleManager
from spotify_session.token_store import TokenBundle, TokenStore

NOW = 1_700_000_000.0
TODAY = datetime.date(2025, 1, 15)


class FakePlaylistWrites:
    """Records create-playlist and add-tracks calls; statuses are configurable."""

    def __init__(self):
        self.calls = []
        self.create_status = 201
        self.add_statuses = []
        self.create_error = None
        self.create_content = None
        self.playlist_id = "pl123"

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content.decode("utf-8")) if request.content else None
        self.calls.append((request.method, request.url.path, body))

        if request.url.path.endswith("/playlists") and "/users/" in request.url.path:
            if self.create_error is not None:
                raise self.create_error("simulated", request=request)
            if self.create_content is not None:
                return httpx.Response(201, content=self.create_content)
            if self.create_status != 201:
                return httpx.Response(self.create_status, json={"error": {"status": self.create_status}})
            return httpx.Response(
                201,
                json={
                    "id": self.playlist_id,
                    "name": body["name"],
                    "external_urls": {"spotify": f"https://open.spotify.com/playlist/{self.playlist_id}"},
                },
            )

        if request.url.path == f"/v1/playlists/{self.playlist_id}/tracks":
            add_calls = len([c for c in self.calls if c[1].endswith("/tracks")])
            status = self.add_statuses[add_calls - 1] if add_calls <= len(self.add_statuses) else 201
            if status >= 400:
                return httpx.Response(status, json={"error": {"status": status}})
            return httpx.Response(status, json={"snapshot_id": "snap"})

        return httpx.Response(404)

    def add_calls(self):
        return [c for c in self.calls if c[1].endswith("/tracks")]


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.api = FakePlaylistWrites()
        self.client = SpotifyHttpClient(transport=httpx.MockTransport(self.api.handler))
        store = TokenStore()
        store.set(
            TokenBundle(
                access_token="at",
                refresh_token="rt",
                token_type="Bearer",
                scope=frozenset({"playlist-modify-public"}),
                expires_at=NOW + 3600,
            )
        )
        self.tokens = TokenLifecycleManager(SpotifyOAuth({}, self.client), store, clock=lambda: NOW)
        self.pipeline = PlaylistCreationPipeline(self.client, self.tokens, today=lambda: TODAY)
        self.selection = TrackSelection.from_ids(["t1", "t2", "t3"])

    async def asyncTearDown(self):
        await self.client.aclose()


class TestPlaylistName(unittest.TestCase):
    def test_default_label_with_date(self):
        self.assertEqual(build_playlist_name("", "top_tracks", TODAY), "My Top Tracks (2025-01-15)")

    def test_blank_user_name_falls_back(self):
        self.assertEqual(build_playlist_name("   ", "recently_played", TODAY), "Recently Played (2025-01-15)")

    def test_user_name_is_trimmed(self):
        self.assertEqual(build_playlist_name("  Road Trip ", "artist_tracks", TODAY), "Road Trip (2025-01-15)")

    def test_unknown_source(self):
        self.assertEqual(build_playlist_name(None, "mystery", TODAY), "My Playlist (2025-01-15)")


class TestTrackSelection(unittest.TestCase):
    def test_uris_keep_order_and_prefix_once(self):
        selection = TrackSelection.from_ids(["b", "spotify:track:a", " ", "c"])
        self.assertEqual(selection.uris(), ["spotify:track:b", "spotify:track:a", "spotify:track:c"])

    def test_from_tracks(self):
        selection = TrackSelection.from_tracks([{"id": "x", "name": "X"}, {"name": "no id"}])
        self.assertEqual(selection.track_ids, ("x",))


class TestPipelineOutcomes(PipelineTestCase):
    async def test_both_phases_succeed(self):
        result = await self.pipeline.create(self.selection, user_id="u1", name="", source="top_tracks")

        self.assertIsInstance(result, Created)
        self.assertEqual(result.playlist_id, "pl123")
        self.assertEqual(result.url, "https://open.spotify.com/playlist/pl123")
        self.assertEqual(result.name, "My Top Tracks (2025-01-15)")

        method, path, body = self.api.calls[0]
        self.assertEqual((method, path), ("POST", "/v1/users/u1/playlists"))
        self.assertEqual(
            body,
            {"name": "My Top Tracks (2025-01-15)", "description": DEFAULT_DESCRIPTION, "public": True},
        )
        self.assertEqual(
            self.api.add_calls(),
            [("POST", "/v1/playlists/pl123/tracks", {"uris": ["spotify:track:t1", "spotify:track:t2", "spotify:track:t3"]})],
        )

    async def test_create_failure_is_failed_and_stops(self):
        self.api.create_status = 403

        result = await self.pipeline.create(self.selection, user_id="u1")

        self.assertIsInstance(result, Failed)
        self.assertIn("403", result.reason)
        self.assertEqual(self.api.add_calls(), [])

    async def test_create_timeout_is_failed(self):
        self.api.create_error = httpx.ConnectTimeout

        result = await self.pipeline.create(self.selection, user_id="u1")

        self.assertIsInstance(result, Failed)
        self.assertEqual(self.api.add_calls(), [])

    async def test_undecodable_create_response_is_failed(self):
        self.api.create_content = b'{"id": "\xff\xfe"}'

        result = await self.pipeline.create(self.selection, user_id="u1")

        self.assertIsInstance(result, Failed)
        self.assertEqual(self.api.add_calls(), [])

    async def test_add_failure_keeps_created_playlist(self):
        self.api.add_statuses = [500]

        result = await self.pipeline.create(self.selection, user_id="u1")

        self.assertIsInstance(result, CreatedTracksFailed)
        self.assertEqual(result.playlist_id, "pl123")
        self.assertEqual(result.url, "https://open.spotify.com/playlist/pl123")
        self.assertIn("500", result.reason)

    async def test_large_selection_is_added_in_chunks(self):
        selection = TrackSelection.from_ids([f"t{i}" for i in range(250)])

        result = await self.pipeline.create(selection, user_id="u1")

        self.assertIsInstance(result, Created)
        sizes = [len(body["uris"]) for _, _, body in self.api.add_calls()]
        self.assertEqual(sizes, [100, 100, 50])
        sent = [u for _, _, body in self.api.add_calls() for u in body["uris"]]
        self.assertEqual(sent, selection.uris())

    async def test_failing_middle_chunk_reports_partial_success(self):
        self.api.add_statuses = [201, 429]
        selection = TrackSelection.from_ids([f"t{i}" for i in range(250)])

        result = await self.pipeline.create(selection, user_id="u1")

        self.assertIsInstance(result, CreatedTracksFailed)
        self.assertEqual(len(self.api.add_calls()), 2)

    async def test_missing_playlist_id_in_response(self):
        self.api.playlist_id = ""

        result = await self.pipeline.create(self.selection, user_id="u1")

        self.assertIsInstance(result, Failed)


class TestPipelinePreconditions(PipelineTestCase):
    async def test_empty_selection(self):
        result = await self.pipeline.create(TrackSelection.from_ids([]), user_id="u1")
        self.assertEqual(result, Failed("no tracks"))
        self.assertEqual(self.api.calls, [])

    async def test_not_authenticated(self):
        self.tokens.logout()
        result = await self.pipeline.create(self.selection, user_id="u1")
        self.assertEqual(result, Failed("not authenticated"))
        self.assertEqual(self.api.calls, [])

    async def test_missing_user_id(self):
        result = await self.pipeline.create(self.selection, user_id=None)
        self.assertEqual(result, Failed("missing user id"))
        self.assertEqual(self.api.calls, [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
