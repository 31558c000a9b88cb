"""HTTP-level tests for the API routes."""

import asyncio
import json

import cloudinary.uploader
import httpx

from lunglens.api.v1.images import build_content_disposition
from lunglens.services.prediction_service import PredictionClient
from lunglens.services.report_service import ReportGenerator
from lunglens.utils.cloudinary_service import ImageStore, extract_object_key

SEED_ID = "3f2a9c1e5b7d4e0fa1b2c3d4e5f60718"
KEY = "lunglens/patients/chest_front_ab12cd.png"

PREDICTION = {"healthy": 5, "tuberculosis": 20, "pneumonia": 75, "prediction": "Pneumonia"}


def fake_upload(file, **options):
    return {"public_id": "lunglens/patients/chest_front_ab12cd", "format": "png"}


def test_root_and_health(api_client):
    assert api_client.get("/").json()["status"] == "healthy"
    assert api_client.get("/health").json() == {"status": "healthy"}


class TestPatientRoutes:
    """Test cases for the patient routes."""

    def test_blank_search_returns_empty_list(self, api_client, patient_collection):
        response = api_client.get("/api/search-patients", params={"q": "  "})
        assert response.status_code == 200
        assert response.json() == []
        assert patient_collection.calls == []

    def test_search_without_query_returns_empty_list(self, api_client):
        response = api_client.get("/api/search-patients")
        assert response.status_code == 200
        assert response.json() == []

    def test_search_returns_camel_case_records(self, api_client):
        response = api_client.get("/api/search-patients", params={"q": "amara"})
        assert response.status_code == 200
        [patient] = response.json()
        assert patient["patientId"] == SEED_ID
        assert patient["medicalHistory"] == "Treated for malaria in 2019"
        assert "_id" not in patient

    def test_get_patient(self, api_client):
        response = api_client.get(f"/api/patient/{SEED_ID}")
        assert response.status_code == 200
        assert response.json()["name"] == "Amara Okafor"

    def test_get_registrar_record(self, api_client, patient_collection):
        patient_collection.documents.append({
            "patientId": "reg-1",
            "name": "Yaa Boateng",
            "sex": "Female",
            "age": 37,
            "symptoms": ["fever", "chestPain"],
            "createdAt": "2026-03-02T10:15:00.000Z",
        })
        response = api_client.get("/api/patient/reg-1")
        assert response.status_code == 200
        assert response.json()["symptoms"] == ["Fever", "Chest Pain"]

    def test_get_unknown_patient(self, api_client):
        response = api_client.get("/api/patient/unknown")
        assert response.status_code == 404
        assert response.json()["detail"] == "Patient not found"

    def test_create_patient(self, api_client, patient_collection):
        response = api_client.post(
            "/api/create-patient",
            json={
                "name": "Kwame Asante",
                "age": 61,
                "sex": "Male",
                "email": "",
                "phone": "+233 24 555 0123",
                "symptoms": ["Cough (more than three weeks)", "Weight Loss"],
                "emergencyContact": "Efua Asante",
            },
        )
        assert response.status_code == 201
        body = response.json()
        assert body["patientId"]
        assert body["sex"] == "male"
        assert body["email"] is None
        assert body["createdAt"] == body["updatedAt"]
        assert len(patient_collection.documents) == 2

    def test_create_patient_validation_error_is_400(self, api_client):
        response = api_client.post("/api/create-patient", json={"name": "Kwame", "age": -1})
        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Invalid request"
        assert any("age" in error for error in body["errors"])

    def test_create_patient_rejects_unknown_symptom(self, api_client):
        response = api_client.post(
            "/api/create-patient",
            json={"name": "Kwame", "age": 30, "symptoms": ["Headache"]},
        )
        assert response.status_code == 400

    def test_create_patient_with_image(self, api_client, monkeypatch):
        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
        response = api_client.post(
            "/api/create-patient-with-image",
            data={"name": "Efua Mensah", "age": "29", "sex": "female", "symptoms": json.dumps(["Fever"])},
            files={"image": ("chest_front.png", b"png-bytes", "image/png")},
        )
        assert response.status_code == 201
        body = response.json()
        assert body["symptoms"] == ["Fever"]
        assert len(body["images"]) == 1
        assert extract_object_key(body["images"][0]) == KEY

    def test_create_patient_with_bad_symptoms_json(self, api_client):
        response = api_client.post(
            "/api/create-patient-with-image",
            data={"name": "Efua Mensah", "age": "29", "symptoms": "[Fever"},
        )
        assert response.status_code == 400
        assert "symptoms" in response.json()["detail"]

    def test_update_patient(self, api_client):
        record = api_client.get(f"/api/patient/{SEED_ID}").json()
        record["phone"] = "+234 803 555 0100"
        record["images"] = ["https://res.cloudinary.com/demo/image/private/v1/lunglens/a.png"]

        response = api_client.put("/api/update-patient", json=record)
        assert response.status_code == 200
        body = response.json()
        assert body["phone"] == "+234 803 555 0100"
        assert body["createdAt"] == record["createdAt"]
        assert body["updatedAt"] != record["updatedAt"]

    def test_update_without_identifier(self, api_client):
        response = api_client.put("/api/update-patient", json={"name": "Amara Okafor", "age": 42})
        assert response.status_code == 400
        assert response.json()["detail"] == "patientId is required"

    def test_update_unknown_patient(self, api_client):
        response = api_client.put(
            "/api/update-patient", json={"patientId": "unknown", "name": "Amara Okafor", "age": 42}
        )
        assert response.status_code == 404


class TestImageRoutes:
    """Test cases for the image routes."""

    def test_upload_rejects_non_image(self, api_client):
        response = api_client.post(
            "/api/upload-patient-image",
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Only image files are allowed"

    def test_upload_returns_url_and_key(self, api_client, monkeypatch):
        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
        response = api_client.post(
            "/api/upload-patient-image",
            files={"image": ("chest_front.png", b"png-bytes", "image/png")},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["imageKey"] == KEY
        assert extract_object_key(body["imageUrl"]) == KEY

    def test_download_sets_attachment_headers(self, api_client, settings):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=b"png-bytes")
        )
        api_client.handles["image_store"] = ImageStore(settings, transport=transport)

        response = api_client.get(
            "/api/download-patient-image",
            params={"url": f"https://res.cloudinary.com/demo/image/private/s--old--/v1/{KEY}"},
        )
        assert response.status_code == 200
        assert response.content == b"png-bytes"
        assert response.headers["content-type"] == "image/png"
        assert response.headers["content-disposition"] == 'attachment; filename="chest_front_ab12cd.png"'

    def test_download_non_ascii_filename(self, api_client, settings):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=b"png-bytes")
        )
        api_client.handles["image_store"] = ImageStore(settings, transport=transport)

        response = api_client.get(
            "/api/download-patient-image",
            params={"url": "https://res.cloudinary.com/demo/image/private/v1/lunglens/patients/%E8%83%B8%E7%89%87_ab12.png"},
        )
        assert response.status_code == 200
        assert response.content == b"png-bytes"
        assert response.headers["content-disposition"] == (
            "attachment; filename=\"___ab12.png\"; filename*=utf-8''%E8%83%B8%E7%89%87_ab12.png"
        )

    def test_content_disposition_escapes_quotes(self):
        assert build_content_disposition('chest "front".png') == (
            "attachment; filename=\"chest _front_.png\"; filename*=utf-8''chest%20%22front%22.png"
        )
        assert build_content_disposition("chest.png") == 'attachment; filename="chest.png"'

    def test_upload_runs_off_the_event_loop(self, api_client, monkeypatch):
        seen = []

        def recording_upload(file, **options):
            try:
                asyncio.get_running_loop()
                seen.append("event loop")
            except RuntimeError:
                seen.append("worker thread")
            return fake_upload(file, **options)

        monkeypatch.setattr(cloudinary.uploader, "upload", recording_upload)
        response = api_client.post(
            "/api/upload-patient-image",
            files={"image": ("chest_front.png", b"png-bytes", "image/png")},
        )
        assert response.status_code == 200
        assert seen == ["worker thread"]

    def test_download_rejects_unknown_url(self, api_client):
        response = api_client.get("/api/download-patient-image", params={"url": "https://example.com/x.png"})
        assert response.status_code == 400


class TestReportRoutes:
    """Test cases for the prediction and report routes."""

    def test_generate_report(self, api_client, settings):
        def handler(request):
            content = 'Sure!\n```json\n{"summary": "S", "cause": "C", "suggestedActions": ["A1", "A2"]}\n```'
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        api_client.handles["report_generator"] = ReportGenerator(settings, transport=httpx.MockTransport(handler))
        response = api_client.post("/api/generate-report", json=PREDICTION)
        assert response.status_code == 200
        assert response.json() == {"summary": "S", "cause": "C", "suggestedActions": "A1\nA2"}

    def test_generate_report_with_unstructured_output(self, api_client, settings):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": "No JSON today."}}]})

        api_client.handles["report_generator"] = ReportGenerator(settings, transport=httpx.MockTransport(handler))
        response = api_client.post("/api/generate-report", json={**PREDICTION, "symptoms": ["Fever"]})
        assert response.status_code == 200
        assert response.json() == {"summary": "No JSON today.", "cause": "", "suggestedActions": ""}

    def test_generate_report_model_failure(self, api_client, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="upstream error"))
        api_client.handles["report_generator"] = ReportGenerator(settings, transport=transport)
        response = api_client.post("/api/generate-report", json=PREDICTION)
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to generate report"

    def test_generate_report_rejects_out_of_range_scores(self, api_client):
        response = api_client.post("/api/generate-report", json={**PREDICTION, "healthy": 140})
        assert response.status_code == 400

    def test_predict(self, api_client, settings):
        def handler(request):
            return httpx.Response(
                200,
                json={"word": "Healthy", "healthy_score": "91.5", "tb_score": "4.5", "pneumonia_score": "4"},
            )

        api_client.handles["prediction_client"] = PredictionClient(settings, transport=httpx.MockTransport(handler))
        response = api_client.post("/api/predict", files={"image": ("xray.jpg", b"jpeg-bytes", "image/jpeg")})
        assert response.status_code == 200
        assert response.json() == {"healthy": 91.5, "tuberculosis": 4.5, "pneumonia": 4.0, "prediction": "Healthy"}

    def test_predict_unreachable(self, api_client, settings):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async def no_sleep(seconds):
            return None

        api_client.handles["prediction_client"] = PredictionClient(
            settings, transport=httpx.MockTransport(handler), sleep=no_sleep
        )
        response = api_client.post("/api/predict", files={"image": ("xray.jpg", b"jpeg-bytes", "image/jpeg")})
        assert response.status_code == 500
        assert response.json()["detail"] == "Prediction service is unreachable. Please try again."

    def test_predict_rejects_non_image(self, api_client):
        response = api_client.post("/api/predict", files={"image": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400


class TestUserRoutes:
    """Test cases for the clinician account routes."""

    def test_get_user(self, api_client):
        response = api_client.get("/api/users/dr.mensah")
        assert response.status_code == 200
        assert response.json() == {"userId": "dr.mensah", "name": "Kofi Mensah", "role": "doctor"}

    def test_get_unknown_user(self, api_client):
        assert api_client.get("/api/users/nobody").status_code == 404

    def test_login(self, api_client):
        response = api_client.post("/api/login", json={"userId": "dr.mensah", "password": "correct-horse"})
        assert response.status_code == 200
        assert response.json()["role"] == "doctor"

    def test_login_with_wrong_password(self, api_client):
        response = api_client.post("/api/login", json={"userId": "dr.mensah", "password": "battery-staple"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid user ID or password"
