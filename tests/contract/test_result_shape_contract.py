from __future__ import annotations

import json

from order_migrator.models.migration import MigrationResult, MigrationStats, PassStats

"""Result body contract shared by the HTTP trigger and sync_logs.new_data."""


def test_result_to_dict_shape():
    stats = MigrationStats.merge(
        PassStats(processed=2, skipped=1, errors=("customer row 3: boom",)),
        PassStats(processed=5, skipped=2, items_processed=9, deleted=1, errors=("order ORD-004 (row 5): boom",)),
    )
    body = MigrationResult(success=False, message="migration completed with errors", stats=stats).to_dict()

    assert body == {
        "success": False,
        "message": "migration completed with errors",
        "stats": {
            "ordersProcessed": 5,
            "customersProcessed": 2,
            "productsProcessed": 9,
            "ordersDeleted": 1,
            "errors": ["order ORD-004 (row 5): boom", "customer row 3: boom"],
        },
    }
    assert stats.skipped == 3
    json.dumps(body)


def test_failure_body():
    body = MigrationResult.failure("Google Sheets API 404").to_dict()
    assert body["success"] is False
    assert body["message"] == "Google Sheets API 404"
    assert body["stats"]["errors"] == ["Google Sheets API 404"]
    assert body["stats"]["ordersProcessed"] == 0
