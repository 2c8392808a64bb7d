from __future__ import annotations

import logging


def test_request_events_share_run_id(system_client, declaration_payload, caplog):
    caplog.set_level(logging.INFO, logger="uzgtd")
    resp = system_client.post("/api/declarations/process", json=declaration_payload())
    assert resp.status_code == 200
    run_id = resp.headers["X-Run-ID"]

    events = {}
    for record in caplog.records:
        payload = getattr(record, "payload", None)
        if payload is not None:
            events.setdefault(record.getMessage(), []).append(payload)

    assert {"request.start", "declaration.processed", "request.end"} <= set(events)
    assert events["request.start"][-1]["path"] == "/api/declarations/process"
    assert events["request.end"][-1]["run_id"] == run_id
    assert events["declaration.processed"][-1]["run_id"] == run_id
    assert events["declaration.processed"][-1]["items"] == 1


def test_caller_supplied_run_id_is_kept(system_client, caplog):
    caplog.set_level(logging.INFO, logger="uzgtd")
    resp = system_client.get("/health", headers={"X-Run-ID": "batch-7"})
    assert resp.headers["X-Run-ID"] == "batch-7"
    starts = [r.payload for r in caplog.records if r.getMessage() == "request.start"]
    assert starts[-1]["run_id"] == "batch-7"
