"""
API tests for the upload routes.

Run: pytest tests/unit/test_upload_routes.py -v
"""

from unittest.mock import patch

from tests.factories import csv_bytes, trial_summary_xlsx

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

PLOT_FILE = csv_bytes(
    ["Plot", "Trt", "Rep", "Yield"],
    [["101", "1", "1", "4.2"], ["102", "2", "1", "4.9"]],
)


class TestFolderUpload:

    def test_folder_with_summary(self, test_client, services):
        response = test_client.post(
            "/api/upload/folder",
            files=[
                ("files", ("T24-017 Plot Data.csv", PLOT_FILE, "text/csv")),
                ("files", ("START HERE - Trial Summary.xlsx", trial_summary_xlsx(), XLSX_TYPE)),
            ],
        )

        assert response.status_code == 200
        body = response.json()
        assert body["trial_id"] == "T24-017"
        assert [r["status"] for r in body["results"]] == ["success", "success"]
        assert body["results"][1]["records"] == 2

    def test_folder_without_context(self, test_client):
        response = test_client.post(
            "/api/upload/folder",
            files=[("files", ("T24-017 Plot Data.csv", PLOT_FILE, "text/csv"))],
        )

        result = response.json()["results"][0]
        assert result["status"] == "error"
        assert result["detail"].startswith("No trial context")

    def test_oversized_file_rejected(self, test_client):
        with patch("routes.upload.settings.max_upload_mb", 1):
            response = test_client.post(
                "/api/upload/folder",
                files=[("files", ("T24-017 Plot Data.csv", b"x" * (1024 * 1024 + 1), "text/csv"))],
                data={"trial_id": "T1"},
            )

        assert response.status_code == 413
        assert response.json()["error"]["code"] == "FILE_TOO_LARGE"


class TestSingleUpload:

    def test_needs_review_then_submit(self, test_client, services):
        content = csv_bytes(["Plot", "Trt", "Rep", "Grain"], [["101", "1", "1", "4.2"]])

        response = test_client.post(
            "/api/upload/single",
            files={"file": ("T1 Plot Data.csv", content, "text/csv")},
            data={"trial_id": "T1"},
        )

        body = response.json()
        assert body["status"] == "needs_review"
        assert body["unmapped_columns"] == ["Grain"]

        review = test_client.get(f"/api/upload/review/{body['raw_upload_id']}")
        assert review.status_code == 200
        assert review.json()["sample_values"]["Grain"] == ["4.2"]

        submitted = test_client.post(
            f"/api/upload/review/{body['raw_upload_id']}",
            json={"column_overrides": {"Grain": "yield_t_ha"}},
        )
        assert submitted.status_code == 200
        assert submitted.json()["status"] == "success"
        assert services.db.rows("plot_data")[0]["yield_t_ha"] == 4.2

    def test_explicit_file_type(self, test_client):
        response = test_client.post(
            "/api/upload/single",
            files={"file": ("export.csv", PLOT_FILE, "text/csv")},
            data={"trial_id": "T1", "file_type": "plotData"},
        )

        assert response.json()["status"] == "success"

    def test_invalid_file_type(self, test_client):
        response = test_client.post(
            "/api/upload/single",
            files={"file": ("export.csv", PLOT_FILE, "text/csv")},
            data={"trial_id": "T1", "file_type": "yieldMap"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "UNKNOWN_FILE_TYPE"


class TestPaste:

    def test_paste_with_trial_column(self, test_client, services):
        response = test_client.post("/api/upload/paste", json={
            "data_type": "plotData",
            "csv_text": "Trial,Plot,Trt,Rep,Yield\nT24-099,101,1,1,4.2\n",
        })

        assert response.status_code == 200
        assert response.json()["records"] == 1
        assert services.db.rows("trials")[0]["id"] == "T24-099"

    def test_paste_without_trial(self, test_client):
        response = test_client.post("/api/upload/paste", json={
            "data_type": "plotData",
            "csv_text": "Plot,Trt,Rep\n101,1,1\n",
        })

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "MISSING_TRIAL_CONTEXT"


class TestReview:

    def test_missing_upload_404(self, test_client):
        response = test_client.get("/api/upload/review/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RAW_UPLOAD_NOT_FOUND"

    def test_invalid_override_422(self, test_client, services):
        upload = {
            "id": "u1", "trial_id": "T1", "filename": "plots.csv", "file_type": "plotData",
            "headers": ["Plot", "Grain"], "raw_rows": [{"Plot": "101", "Grain": "4"}],
            "column_map": {"Plot": "plot"}, "unmapped_columns": ["Grain"],
            "status": "pending",
        }
        services.db.set_table_data("raw_uploads", [upload])

        response = test_client.post(
            "/api/upload/review/u1", json={"column_overrides": {"Grain": "grain_yield"}}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_COLUMN_OVERRIDE"

    def test_failed_load_returns_error_result(self, test_client, services):
        content = csv_bytes(["Plot", "Trt", "Rep", "Grain"], [["101", "1", "1", "4.2"]])
        staged = test_client.post(
            "/api/upload/single",
            files={"file": ("T1 Plot Data.csv", content, "text/csv")},
            data={"trial_id": "T1"},
        ).json()
        services.db.fail_on("plot_data", "upsert", "deadlock detected")

        response = test_client.post(
            f"/api/upload/review/{staged['raw_upload_id']}",
            json={"column_overrides": {"Grain": "yield_t_ha"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "error"
        assert "deadlock detected" in body["detail"]
        assert body["raw_upload_id"] == staged["raw_upload_id"]


class TestCheckExisting:

    def test_coverage(self, test_client, services):
        services.db.set_table_data("trial_data_files", [
            {"trial_id": "T1", "file_type": "plotData", "has_data": True},
        ])

        response = test_client.get("/api/upload/check-existing", params={"trial_id": "T1"})

        assert response.json() == {"trial_id": "T1", "file_types": ["plotData"]}

    def test_requires_trial_id(self, test_client):
        response = test_client.get("/api/upload/check-existing")

        assert response.status_code == 422


class TestHealth:

    def test_health_reports_database(self, test_client):
        db_status = {"status": "healthy", "trials_count": 2, "pending_reviews": 0}

        with patch("main.check_connection", return_value=db_status):
            response = test_client.get("/health")

        assert response.json()["status"] == "healthy"

    def test_degraded(self, test_client):
        with patch("main.check_connection", return_value={"status": "unhealthy", "error": "down"}):
            response = test_client.get("/health")

        assert response.json()["status"] == "degraded"
