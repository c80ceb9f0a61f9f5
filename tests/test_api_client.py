"""
Tests for the REST client, using a mocked requests session
"""

import io
import json
from unittest.mock import Mock

import pytest
import requests

from roomreport.client.api_client import ApiClient, ApiError


def make_response(status=200, payload=None, body=None):
    response = requests.Response()
    response.status_code = status
    if body is not None:
        response.raw = io.BytesIO(body)
    else:
        response._content = json.dumps(payload).encode() if payload is not None else b""
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def api(session):
    return ApiClient("http://localhost:8080/", token="tok", session=session, chunk_size=4)


class TestRequests:
    """Tests for URLs, headers and error mapping"""

    def test_login_posts_credentials(self, session):
        session.request.return_value = make_response(200, {"message": "Login successful", "token": "t", "user": {"id": 1}})
        api = ApiClient("http://localhost:8080", session=session)

        data = api.login("alice", "secret123")

        assert data["token"] == "t"
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "http://localhost:8080/api/auth/login")
        assert session.request.call_args.kwargs["json"] == {"username": "alice", "password": "secret123"}
        assert "Authorization" not in session.request.call_args.kwargs["headers"]

    def test_bearer_header_sent(self, api, session):
        session.request.return_value = make_response(200, {"rooms": [{"id": 1, "room_number": "101"}]})

        rooms = api.list_rooms()

        assert rooms == [{"id": 1, "room_number": "101"}]
        assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"

    def test_server_detail_becomes_message(self, api, session):
        session.request.return_value = make_response(409, {"detail": "Room number already exists"})

        with pytest.raises(ApiError) as e:
            api.create_room("101")

        assert e.value.message == "Room number already exists"
        assert e.value.status_code == 409

    def test_error_key_is_understood(self, api, session):
        session.request.return_value = make_response(400, {"error": "Room not found"})

        with pytest.raises(ApiError) as e:
            api.delete_room(3)

        assert e.value.message == "Room not found"

    def test_fallback_message_for_non_json_errors(self, api, session):
        session.request.return_value = make_response(502, body=b"<html>bad gateway</html>")

        with pytest.raises(ApiError) as e:
            api.list_videos()

        assert e.value.message == "Failed to load videos"
        assert e.value.status_code == 502

    def test_network_failure(self, api, session):
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ApiError) as e:
            api.list_users()

        assert e.value.message == "Failed to load users"
        assert e.value.status_code is None

    def test_missing_list_key_is_empty(self, api, session):
        session.request.return_value = make_response(200, {})

        assert api.list_rooms() == []

    def test_stream_url_carries_token(self, api):
        assert api.stream_url(5) == "http://localhost:8080/api/videos/5/stream?token=tok"

        api.token = None
        assert api.stream_url(5) == "http://localhost:8080/api/videos/5/stream"


class TestUpload:
    """Tests for the multipart upload with progress"""

    def test_upload_reports_progress(self, api, session, tmp_path):
        recording = tmp_path / "recording_1.webm"
        recording.write_bytes(b"0123456789")
        sent = {}

        def fake_request(method, url, headers=None, timeout=None, data=None, **kwargs):
            chunks = []
            while True:
                chunk = data.read(8192)
                if not chunk:
                    break
                chunks.append(chunk)
            sent["body"] = b"".join(chunks)
            sent["headers"] = headers
            return make_response(200, {"message": "Video uploaded successfully", "video": {"id": 1}})

        session.request.side_effect = fake_request
        progress = []

        result = api.upload_video(str(recording), "101", progress=lambda done, total: progress.append((done, total)),
                                  content_type="video/webm")

        assert result["video"]["id"] == 1
        assert sent["headers"]["Content-Type"].startswith("multipart/form-data; boundary=")
        assert b'name="room_number"' in sent["body"]
        assert b'name="video"; filename="recording_1.webm"' in sent["body"]
        assert b"Content-Type: video/webm" in sent["body"]
        assert b"0123456789" in sent["body"]
        assert progress[-1] == (len(sent["body"]), len(sent["body"]))
        assert [done for done, _ in progress] == sorted(done for done, _ in progress)

    def test_file_is_streamed_not_read_whole(self, api, session, tmp_path):
        recording = tmp_path / "big.webm"
        recording.write_bytes(b"v" * 100_000)
        reads = []

        def fake_request(method, url, headers=None, timeout=None, data=None, **kwargs):
            while True:
                chunk = data.read(8192)
                if not chunk:
                    break
                reads.append(len(chunk))
            return make_response(200, {"message": "Video uploaded successfully"})

        session.request.side_effect = fake_request

        api.upload_video(str(recording), "101")

        assert max(reads) <= 8192
        assert sum(reads) > 100_000

    def test_upload_failure_message(self, api, session, tmp_path):
        recording = tmp_path / "r.webm"
        recording.write_bytes(b"x")
        session.request.return_value = make_response(500, {})

        with pytest.raises(ApiError) as e:
            api.upload_video(str(recording), "101")

        assert e.value.message == "Upload failed. Please try again."


class TestDownload:
    """Tests for download_video"""

    def test_saves_under_original_name(self, api, session, tmp_path):
        session.request.return_value = make_response(200, body=b"video-content")

        path = api.download_video({"id": 3, "original_filename": "lobby.webm", "filename": "video_x.webm"}, str(tmp_path))

        assert path == str(tmp_path / "lobby.webm")
        assert (tmp_path / "lobby.webm").read_bytes() == b"video-content"
        assert session.request.call_args.kwargs["stream"] is True

    def test_failed_download(self, api, session, tmp_path):
        session.request.return_value = make_response(404, {"detail": "Video file not found"})

        with pytest.raises(ApiError) as e:
            api.download_video({"id": 3, "filename": "v.webm"}, str(tmp_path))

        assert e.value.message == "Video file not found"
        assert not (tmp_path / "v.webm").exists()
