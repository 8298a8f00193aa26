"""Contract tests for POST /api/chat on image endpoints (mocked upstream)."""

import base64
import json
import time

import httpx
import pytest

IMAGE_BYTES = b"\x89PNG\r\n\x1a\n generated pixels"
IMAGE_B64 = base64.b64encode(IMAGE_BYTES).decode()


@pytest.fixture
def together_image(make_endpoint):
    return make_endpoint(platform_id="together", model="black-forest-labs/FLUX.1-schnell",
                         model_type="image")


@pytest.fixture
def openai_image(make_endpoint):
    return make_endpoint(platform_id="openai", model="dall-e-3", model_type="image")


def post_chat(client, endpoint_id, session_id=None, message="a red fox", **extra):
    body = {"endpoint_id": endpoint_id, "session_id": session_id, "message": message, **extra}
    return client.post("/api/chat", json=body)


def parse_lines(body: str) -> list[str]:
    assert body.endswith("\n")
    return body[:-1].split("\n")


class TestSuccess:

    def test_b64_json_persisted_exactly(self, client, store, blobs, upstream, together_image,
                                        chat_session):
        upstream.handler = lambda request: httpx.Response(200, json={"data": [{"b64_json": IMAGE_B64}]})

        resp = post_chat(client, together_image, chat_session)

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        lines = parse_lines(resp.text)
        assert lines[0] == "PROGRESS:Initializing image generation..."
        assert all(line.startswith("PROGRESS:") for line in lines[:-1])
        assert lines[-1].startswith("COMPLETE:")

        result = json.loads(lines[-1][len("COMPLETE:"):])
        assert result["success"] is True
        assert result["content"] == 'Generated image for: "a red fox"'
        assert result["image_path"].startswith("/uploads/generated-")
        assert blobs.read(result["image_path"]) == IMAGE_BYTES

        messages = store.get_messages(chat_session)
        assert [(m.role, m.image_path) for m in messages] == [
            ("user", None),
            ("assistant", result["image_path"]),
        ]

    def test_together_request_shape(self, client, upstream, together_image):
        upstream.handler = lambda request: httpx.Response(200, json={"data": [{"b64_json": IMAGE_B64}]})

        post_chat(client, together_image)

        request = upstream.requests[0]
        assert str(request.url) == "https://api.together.xyz/v1/images/generations"
        body = upstream.json_body()
        assert (body["width"], body["height"], body["steps"]) == (1024, 1024, 20)

    def test_custom_platform_on_together_host_gets_together_shape(self, client, upstream,
                                                                 make_endpoint):
        endpoint_id = make_endpoint(platform_id="custom", custom_base_url="https://api.together.xyz/v1",
                                    model="flux-schnell", model_type="image")
        upstream.handler = lambda request: httpx.Response(200, json={"data": [{"b64_json": IMAGE_B64}]})

        post_chat(client, endpoint_id)

        body = upstream.json_body()
        assert (body["width"], body["height"], body["steps"]) == (1024, 1024, 20)
        assert "size" not in body

    def test_openai_request_shape(self, client, upstream, openai_image):
        upstream.handler = lambda request: httpx.Response(200, json={"data": [{"b64_json": IMAGE_B64}]})

        post_chat(client, openai_image)

        assert upstream.json_body()["size"] == "1024x1024"

    def test_url_response_is_downloaded(self, client, blobs, upstream, openai_image):
        def handler(request):
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, content=IMAGE_BYTES)
            return httpx.Response(200, json={"data": [{"url": "https://cdn.example.com/img.png"}]})
        upstream.handler = handler

        lines = parse_lines(post_chat(client, openai_image).text)

        result = json.loads(lines[-1][len("COMPLETE:"):])
        assert blobs.read(result["image_path"]) == IMAGE_BYTES
        assert "authorization" not in upstream.requests[1].headers

    def test_together_output_choices_shape(self, client, blobs, upstream, together_image):
        upstream.handler = lambda request: httpx.Response(
            200, json={"output": {"choices": [{"image_base64": IMAGE_B64}]}})

        lines = parse_lines(post_chat(client, together_image).text)

        result = json.loads(lines[-1][len("COMPLETE:"):])
        assert blobs.read(result["image_path"]) == IMAGE_BYTES


class TestFailures:

    def test_no_image_data(self, client, store, upstream, together_image, chat_session):
        upstream.handler = lambda request: httpx.Response(200, json={"data": []})

        lines = parse_lines(post_chat(client, together_image, chat_session).text)

        assert lines[-1] == "ERROR:No image data received from API"
        assistant = store.get_messages(chat_session)[-1]
        assert assistant.role == "assistant"
        assert assistant.content == "Error generating image: No image data received from API"

    def test_unsupported_provider_never_calls_upstream(self, client, upstream, make_endpoint):
        endpoint_id = make_endpoint(platform_id="anthropic", model="claude-3-5-sonnet-20241022",
                                    model_type="image")

        resp = post_chat(client, endpoint_id)

        assert resp.status_code == 200
        lines = parse_lines(resp.text)
        assert lines[-1].startswith("ERROR:Anthropic does not currently support image generation")
        assert upstream.requests == []

    @pytest.mark.parametrize("base_url,message", [
        ("https://api.anthropic.com/v1", "ERROR:Anthropic does not currently support"),
        ("https://generativelanguage.googleapis.com/v1beta", "ERROR:Google AI does not currently support"),
    ])
    def test_custom_platform_on_unsupported_host(self, client, upstream, make_endpoint,
                                                 base_url, message):
        endpoint_id = make_endpoint(platform_id="custom", custom_base_url=base_url,
                                    model="some-image-model", model_type="image")

        lines = parse_lines(post_chat(client, endpoint_id).text)

        assert lines[-1].startswith(message)
        assert upstream.requests == []

    def test_upstream_error_detail(self, client, upstream, openai_image):
        upstream.handler = lambda request: httpx.Response(
            400, json={"error": {"message": "Your prompt was rejected"}})

        lines = parse_lines(post_chat(client, openai_image).text)

        assert lines[-1] == "ERROR:Your prompt was rejected"

    def test_upstream_401_without_detail(self, client, upstream, openai_image):
        upstream.handler = lambda request: httpx.Response(401, text="unauthorized")

        lines = parse_lines(post_chat(client, openai_image).text)

        assert lines[-1].startswith("ERROR:")
        assert "Authentication Error" in lines[-1]

    def test_timeout(self, client, upstream, openai_image):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)
        upstream.handler = slow

        lines = parse_lines(post_chat(client, openai_image).text)

        assert "Timeout Error" in lines[-1]

    def test_trickling_response_hits_total_deadline(self, client, store, upstream, openai_image,
                                                    chat_session, monkeypatch):
        monkeypatch.setenv("IMAGE_TIMEOUT", "0.05")

        def trickle():
            yield b'{"data": [{"b64_json": "'
            time.sleep(0.2)
            yield IMAGE_B64.encode() + b'"}]}'
        upstream.handler = lambda request: httpx.Response(200, content=trickle())

        lines = parse_lines(post_chat(client, openai_image, chat_session).text)

        assert "Timeout Error" in lines[-1]
        assert not any(line.startswith("COMPLETE:") for line in lines)
        assert store.get_messages(chat_session)[-1].content.startswith("Error generating image:")

    def test_url_fetch_shares_the_deadline(self, client, upstream, openai_image, monkeypatch):
        monkeypatch.setenv("IMAGE_TIMEOUT", "0.2")

        def slow_image():
            yield IMAGE_BYTES[:4]
            time.sleep(0.4)
            yield IMAGE_BYTES[4:]

        def handler(request):
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, content=slow_image())
            return httpx.Response(200, json={"data": [{"url": "https://cdn.example.com/img.png"}]})
        upstream.handler = handler

        lines = parse_lines(post_chat(client, openai_image).text)

        assert len(upstream.requests) == 2
        assert "Timeout Error" in lines[-1]


class TestSaveFlag:

    def test_save_to_db_false_on_success(self, client, store, upstream, together_image,
                                         chat_session):
        upstream.handler = lambda request: httpx.Response(200, json={"data": [{"b64_json": IMAGE_B64}]})

        post_chat(client, together_image, chat_session, save_to_db=False)

        assert store.count_messages() == 0

    def test_save_to_db_false_on_failure(self, client, store, upstream, together_image,
                                         chat_session):
        upstream.handler = lambda request: httpx.Response(500, json={})

        post_chat(client, together_image, chat_session, save_to_db=False)

        assert store.count_messages() == 0
