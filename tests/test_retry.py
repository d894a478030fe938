"""Response classification, credential renewal and page-size recovery."""

import datetime as dt
import json
import threading

import pytest

from conftest import FakeResponse, bearer

from agroweather.clients.retry import (
    ApiError,
    CredentialExpired,
    CredentialExpiredError,
    HardError,
    PageTooLarge,
    RequestRetryDriver,
    RequestSpec,
    Success,
    classify_response,
    fetch_paged,
)
from agroweather.clients.session import AuthenticationError, Session
from agroweather.core.dates import DateRange

EXPIRED_BODY = json.dumps({"statusCode": 401, "statusName": "Unauthorized", "detailedMessage": "API Access Expired"})


def build_request(chunk):
    return RequestSpec("GET", f"v2/weather/locations/1,1/observations/{chunk.start},{chunk.end}", {"limit": len(chunk)})


def chunk_of(call):
    return call["url"].rsplit("/", 1)[-1]


def test_classify_success_and_empty():
    assert classify_response(200, '{"observations": []}') == Success({"observations": []})
    assert classify_response(204, "") == Success({})


def test_classify_expired_before_status():
    assert classify_response(401, EXPIRED_BODY) == CredentialExpired()
    assert classify_response(200, "API Access Expired") == CredentialExpired()


def test_classify_page_too_large_with_suggestion():
    body = json.dumps(
        {
            "statusCode": 400,
            "statusName": "Bad Request",
            "detailedMessage": "The limit of 120 is too large; the maximum limit for this endpoint is 50.",
        }
    )
    assert classify_response(400, body, current_limit=120) == PageTooLarge(50)


def test_classify_page_too_large_without_suggestion_halves():
    body = json.dumps({"statusCode": 400, "simpleMessage": "Requested limit exceeds what is allowed."})
    assert classify_response(400, body, current_limit=40) == PageTooLarge(20)


def test_classify_hard_errors():
    body = json.dumps({"statusCode": 404, "statusName": "Not Found", "simpleMessage": "No field", "errorId": "abc"})
    outcome = classify_response(404, body)

    assert isinstance(outcome, HardError)
    assert outcome.status_code == 404
    assert "ErrorID: abc" in outcome.message
    assert isinstance(classify_response(200, "<html>"), HardError)
    assert classify_response(500, "oops").to_exception().status_code == 500


def test_expired_token_renewed_once_and_chunk_refetched(make_session):
    expired = {"done": False}

    def handler(call):
        if chunk_of(call).startswith("2021-01-11") and not expired["done"]:
            expired["done"] = True
            return FakeResponse(401, text=EXPIRED_BODY)
        return FakeResponse(200, {"chunk": chunk_of(call)})

    session, http = make_session(handler)
    driver = RequestRetryDriver(session)

    payloads = fetch_paged(driver, DateRange(dt.date(2021, 1, 1), dt.date(2021, 2, 9)), 10, build_request)

    assert [payload["chunk"][:10] for payload in payloads] == ["2021-01-01", "2021-01-11", "2021-01-21", "2021-01-31"]
    assert http.tokens_issued == 2
    assert session.refresh_count == 2

    requested = [(chunk_of(call)[:10], bearer(call)) for call in http.api_calls]
    assert requested == [
        ("2021-01-01", "token-1"),
        ("2021-01-11", "token-1"),
        ("2021-01-11", "token-2"),
        ("2021-01-21", "token-2"),
        ("2021-01-31", "token-2"),
    ]


def test_explicit_token_expiry_is_raised(make_session):
    session, http = make_session(lambda call: FakeResponse(401, text=EXPIRED_BODY))
    driver = RequestRetryDriver(session, token="callers-token")

    with pytest.raises(CredentialExpiredError):
        driver.fetch(DateRange(dt.date(2021, 1, 1)), build_request)

    assert http.tokens_issued == 0
    assert bearer(http.api_calls[0]) == "callers-token"


def test_token_only_session_cannot_renew():
    from conftest import FakeHttp

    http = FakeHttp(lambda call: FakeResponse(401, text=EXPIRED_BODY))
    session = Session(token="bare", http=http)

    with pytest.raises(CredentialExpiredError):
        RequestRetryDriver(session).fetch(DateRange(dt.date(2021, 1, 1)), build_request)
    with pytest.raises(AuthenticationError):
        session.refresh("bare")


def test_bad_credentials_raise(make_session):
    session, _ = make_session(auth_status=401)
    with pytest.raises(AuthenticationError, match="incorrect"):
        session.authenticate()


def test_page_shrink_replans_from_rejected_chunk(make_session):
    def handler(call):
        limit = call["params"]["limit"]
        if limit > 5:
            body = {"statusCode": 400, "detailedMessage": f"The limit {limit} exceeds the maximum of 5."}
            return FakeResponse(400, body)
        return FakeResponse(200, {"chunk": chunk_of(call)})

    session, http = make_session(handler)
    payloads = fetch_paged(
        RequestRetryDriver(session), DateRange(dt.date(2021, 1, 1), dt.date(2021, 1, 12)), 10, build_request
    )

    assert [payload["chunk"] for payload in payloads] == [
        "2021-01-01,2021-01-05",
        "2021-01-06,2021-01-10",
        "2021-01-11,2021-01-12",
    ]
    assert http.api_calls[0]["params"]["limit"] == 10


def test_page_shrink_keeps_fetched_chunks(make_session):
    def handler(call):
        chunk = chunk_of(call)
        if chunk.startswith("2021-01-05") and call["params"]["limit"] > 2:
            return FakeResponse(400, {"statusCode": 400, "detailedMessage": "limit is too large"})
        return FakeResponse(200, {"chunk": chunk})

    session, http = make_session(handler)
    payloads = fetch_paged(
        RequestRetryDriver(session), DateRange(dt.date(2021, 1, 1), dt.date(2021, 1, 8)), 4, build_request
    )

    assert [payload["chunk"] for payload in payloads] == [
        "2021-01-01,2021-01-04",
        "2021-01-05,2021-01-06",
        "2021-01-07,2021-01-08",
    ]
    assert [chunk_of(call) for call in http.api_calls].count("2021-01-01,2021-01-04") == 1


def test_hard_error_is_not_retried(make_session):
    session, http = make_session(lambda call: FakeResponse(500, {"statusCode": 500, "statusName": "Server Error"}))

    with pytest.raises(ApiError) as excinfo:
        fetch_paged(RequestRetryDriver(session), DateRange(dt.date(2021, 1, 1), dt.date(2021, 1, 3)), 10, build_request)

    assert excinfo.value.status_code == 500
    assert len(http.api_calls) == 1


def test_single_day_page_rejected_raises(make_session):
    session, _ = make_session(lambda call: FakeResponse(400, {"statusCode": 400, "detailedMessage": "limit too large"}))

    with pytest.raises(ApiError, match="single-day"):
        fetch_paged(RequestRetryDriver(session), DateRange(dt.date(2021, 1, 1)), 1, build_request)


def test_concurrent_expiry_renews_token_once(make_session):
    def handler(call):
        if bearer(call) == "token-1":
            return FakeResponse(401, text=EXPIRED_BODY)
        return FakeResponse(200, {"chunk": chunk_of(call)})

    session, http = make_session(handler)
    assert session.token == "token-1"

    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []

    def fetch(offset):
        barrier.wait(timeout=5)
        day = dt.date(2021, 1, 1) + dt.timedelta(days=offset)
        outcomes.append(RequestRetryDriver(session).fetch(DateRange(day), build_request))

    threads = [threading.Thread(target=fetch, args=(offset,)) for offset in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert http.tokens_issued == 2
    assert len(outcomes) == workers
    assert all(isinstance(outcome, Success) for outcome in outcomes)
    successful = [call for call in http.api_calls if bearer(call) == "token-2"]
    assert len(successful) == workers


def test_refresh_with_stale_token_reuses_new_token(make_session):
    session, http = make_session()
    stale = session.token

    results = []
    threads = [threading.Thread(target=lambda: results.append(session.refresh(stale))) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert results == ["token-2"] * 6
    assert http.tokens_issued == 2
