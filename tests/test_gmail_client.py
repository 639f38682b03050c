from __future__ import annotations

import base64
import email
from email import policy

import httplib2
import pytest
from googleapiclient.errors import HttpError

from app.clients import gmail
from app.clients.gmail import EmailAttachment, GmailClient, GmailSendError, build_raw_message


class FakeCredentials:
    def __init__(self, token: str) -> None:
        self.token = token


class RecordingTokenService:
    def __init__(self) -> None:
        self.tokens = ["stale-token", "fresh-token"]
        self.forced: list[tuple[str, str | None]] = []

    async def get_credentials(self, *, user_id: str) -> FakeCredentials:
        return FakeCredentials(self.tokens[0])

    async def get_valid_access_token(
        self, *, user_id: str, force_refresh: bool = False, rejected_token: str | None = None
    ) -> str:
        if force_refresh:
            self.forced.append((user_id, rejected_token))
            self.tokens.pop(0)
        return self.tokens[0]


def _http_error(status: int) -> HttpError:
    return HttpError(
        httplib2.Response({"status": str(status)}),
        b'{"error": {"message": "denied"}}',
    )


class FakeGmailService:
    def __init__(self, outcomes: list) -> None:
        self.outcomes = outcomes
        self.sent: list[tuple[str, dict]] = []
        self._current_credentials = None

    def users(self):
        return self

    def messages(self):
        return self

    def send(self, *, userId: str, body: dict):
        self.sent.append((self._current_credentials.token, body))
        return self

    def execute(self) -> dict:
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture()
def fake_build(monkeypatch: pytest.MonkeyPatch):
    def install(outcomes: list) -> FakeGmailService:
        service = FakeGmailService(outcomes)

        def _build(api, version, *, credentials, cache_discovery):
            assert (api, version) == ("gmail", "v1")
            service._current_credentials = credentials
            return service

        monkeypatch.setattr(gmail, "build", _build)
        return service

    return install


def _decode(raw: str) -> email.message.EmailMessage:
    padded = raw + "=" * (-len(raw) % 4)
    return email.message_from_bytes(base64.urlsafe_b64decode(padded), policy=policy.default)


def test_build_raw_message_is_urlsafe_and_parseable() -> None:
    raw = build_raw_message(
        to="hr@example.com",
        subject="Application",
        body="Hello",
        attachments=[EmailAttachment(filename="cv.pdf", content=b"%PDF-1.4")],
    )

    assert "+" not in raw and "/" not in raw and not raw.endswith("=")
    message = _decode(raw)
    assert message["To"] == "hr@example.com"
    assert message["Subject"] == "Application"
    attachment = next(message.iter_attachments())
    assert attachment.get_filename() == "cv.pdf"
    assert attachment.get_content_type() == "application/pdf"


@pytest.mark.asyncio
async def test_send_email_returns_message_ids(fake_build) -> None:
    service = fake_build([{"id": "msg-1", "threadId": "thread-1"}])
    client = GmailClient(RecordingTokenService())

    sent = await client.send_email(user_id="u", to="hr@example.com", subject="Hi", body="Body")

    assert (sent.message_id, sent.thread_id) == ("msg-1", "thread-1")
    assert service.sent[0][0] == "stale-token"


@pytest.mark.asyncio
async def test_send_email_retries_once_after_401(fake_build) -> None:
    service = fake_build([_http_error(401), {"id": "msg-2"}])
    tokens = RecordingTokenService()

    sent = await GmailClient(tokens).send_email(user_id="u", to="a@b.c", subject="s", body="b")

    assert sent.message_id == "msg-2"
    assert tokens.forced == [("u", "stale-token")]
    assert [credentials for credentials, _ in service.sent] == ["stale-token", "fresh-token"]


@pytest.mark.asyncio
async def test_second_401_is_not_retried_again(fake_build) -> None:
    tokens = RecordingTokenService()
    tokens.tokens.append("unused-token")
    fake_build([_http_error(401), _http_error(401)])

    with pytest.raises(GmailSendError):
        await GmailClient(tokens).send_email(user_id="u", to="a@b.c", subject="s", body="b")

    assert tokens.forced == [("u", "stale-token")]


@pytest.mark.asyncio
async def test_non_auth_errors_are_not_retried(fake_build) -> None:
    tokens = RecordingTokenService()
    fake_build([_http_error(400)])

    with pytest.raises(GmailSendError):
        await GmailClient(tokens).send_email(user_id="u", to="a@b.c", subject="s", body="b")

    assert tokens.forced == []
