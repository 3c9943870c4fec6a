import io
import time
from pathlib import Path

import pytest
from PIL import Image

from src.image_asset_service.app.models import Tenant


def upload(client, headers, data, filename="photo.jpg", content_type="image/jpeg", **form):
    return client.post(
        "/api/images/upload",
        headers=headers,
        files={"file": (filename, data, content_type)},
        data=form,
    )


def stored_files(root: str) -> list[Path]:
    return [path for path in Path(root).rglob("*") if path.is_file()]


@pytest.fixture
def product_image(test_client, acme_headers, photo_jpeg):
    response = upload(
        test_client, acme_headers, photo_jpeg, category="product", tags="red, shoes"
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def private_image(test_client, acme_headers, photo_jpeg):
    response = upload(test_client, acme_headers, photo_jpeg, category="personal")
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestUpload:
    def test_product_image_is_public(self, product_image):
        assert product_image["is_public"] is True
        assert product_image["category"] == "product"
        assert product_image["tags"] == ["red", "shoes"]
        assert product_image["mime_type"] == "image/jpeg"
        assert product_image["metadata"]["width"] == 800
        assert product_image["metadata"]["height"] == 600
        assert set(product_image["variants"]) == {
            "thumbnail", "small", "medium", "large", "original",
        }
        assert product_image["variants"]["thumbnail"]["width"] == 150

        public_urls = product_image["public_urls"]
        base = f"/api/images/{product_image['image_id']}"
        assert public_urls["original"] == base
        assert public_urls["thumbnail"] == f"{base}?size=thumbnail"
        assert public_urls["info"] == f"{base}/info"
        assert "token=" in product_image["urls"]["thumbnail"]

    def test_personal_image_is_private(self, private_image):
        assert private_image["is_public"] is False
        assert private_image["public_urls"] is None
        assert all("token=" in url for url in private_image["urls"].values())

    def test_storage_filename_is_sanitized(self, test_client, acme_headers, small_jpeg):
        response = upload(test_client, acme_headers, small_jpeg, filename="my holiday (1).JPG")

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["original_name"] == "my holiday (1).JPG"
        assert data["filename"].endswith("_my_holiday_1.jpg")

    def test_requires_bearer(self, test_client, photo_jpeg):
        response = upload(test_client, {}, photo_jpeg)

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_rejects_unsupported_type(self, test_client, acme_headers, gif_bytes):
        response = upload(test_client, acme_headers, gif_bytes, "anim.gif", "image/gif")

        assert response.status_code == 400
        assert "Only JPG, PNG, and WebP" in response.json()["error"]

    def test_rejects_invalid_identifier(self, test_client, acme_headers, small_jpeg):
        response = upload(test_client, acme_headers, small_jpeg, product_id="../etc")

        assert response.status_code == 400

    def test_monthly_limit(self, test_client, acme_headers, small_jpeg):
        async def limit_to_one():
            await Tenant.filter(name="acme").update(max_images_per_month=1)

        test_client.portal.call(limit_to_one)
        assert upload(test_client, acme_headers, small_jpeg).status_code == 201

        response = upload(test_client, acme_headers, small_jpeg)

        assert response.status_code == 413
        body = response.json()
        assert body["error"] == "Upload limit exceeded"
        assert body["details"] == ["Monthly upload limit exceeded (1 images)"]
        assert body["reasons"] == {
            "within_monthly_count": False,
            "within_storage_budget": True,
            "within_per_file_size_limit": True,
        }
        assert body["remaining"]["monthly_remaining"] == 0
        assert body["limits"]["max_images_per_month"] == 1


class TestBulkUpload:
    def test_partial_success(self, test_client, acme_headers, small_jpeg, gif_bytes):
        response = test_client.post(
            "/api/images/bulk-upload",
            headers=acme_headers,
            files=[
                ("files", ("a.jpg", small_jpeg, "image/jpeg")),
                ("files", ("b.gif", gif_bytes, "image/gif")),
            ],
            data={"category": "product"},
        )

        assert response.status_code == 201, response.text
        data = response.json()["data"]
        assert data["summary"] == {"total": 2, "successful": 1, "failed": 1}
        assert data["uploaded"][0]["is_public"] is True
        assert data["errors"][0]["filename"] == "b.gif"

    def test_too_many_files(self, test_client, acme_headers, small_jpeg):
        files = [("files", (f"{i}.jpg", small_jpeg, "image/jpeg")) for i in range(11)]

        response = test_client.post(
            "/api/images/bulk-upload", headers=acme_headers, files=files
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Too many files. Maximum 10 files allowed."


class TestServe:
    def test_public_image_without_credentials(self, test_client, product_image, photo_jpeg):
        base = product_image["public_urls"]["original"]

        original = test_client.get(base)
        thumbnail = test_client.get(product_image["public_urls"]["thumbnail"])

        assert original.status_code == 200
        assert original.content == photo_jpeg
        assert original.headers["content-type"] == "image/jpeg"
        assert original.headers["cache-control"] == "public, max-age=31536000"
        assert thumbnail.status_code == 200
        assert thumbnail.headers["content-type"] == "image/webp"
        assert thumbnail.headers["x-served-size"] == "thumbnail"
        with Image.open(io.BytesIO(thumbnail.content)) as image:
            assert image.format == "WEBP"
            assert max(image.size) <= 150

    def test_private_image_needs_credentials(self, test_client, private_image):
        base = f"/api/images/{private_image['image_id']}"

        response = test_client.get(base)

        assert response.status_code == 401

    def test_private_image_with_token(self, test_client, private_image, photo_jpeg):
        response = test_client.get(private_image["urls"]["original"])

        assert response.status_code == 200
        assert response.content == photo_jpeg
        assert response.headers["cache-control"] == "private, max-age=3600"
        assert response.headers["etag"].startswith(f'"{private_image["image_id"]}-original-')

    def test_private_image_for_owner(self, test_client, acme_headers, private_image):
        response = test_client.get(
            f"/api/images/{private_image['image_id']}?size=small", headers=acme_headers
        )

        assert response.status_code == 200
        assert response.headers["x-served-size"] == "small"

    def test_private_image_for_other_tenant(
        self, test_client, globex_headers, private_image
    ):
        response = test_client.get(
            f"/api/images/{private_image['image_id']}", headers=globex_headers
        )

        assert response.status_code == 403

    def test_token_of_another_image(
        self, test_client, acme_headers, small_jpeg, private_image
    ):
        other = upload(test_client, acme_headers, small_jpeg, category="personal")
        other_token = other.json()["data"]["access_token"]

        response = test_client.get(
            f"/api/images/{private_image['image_id']}?token={other_token}"
        )

        assert response.status_code == 403

    def test_forged_token(self, test_client, private_image):
        response = test_client.get(
            f"/api/images/{private_image['image_id']}?token=not.valid"
        )

        assert response.status_code == 401

    def test_unknown_size(self, test_client, product_image):
        response = test_client.get(f"{product_image['public_urls']['original']}?size=huge")

        assert response.status_code == 400
        assert response.json()["error"] == "Unknown size: huge"

    @pytest.mark.parametrize(
        "image_id, status",
        [("not-a-uuid", 404), ("00000000-0000-4000-8000-000000000000", 404)],
    )
    def test_bad_ids(self, test_client, acme_headers, image_id, status):
        response = test_client.get(f"/api/images/{image_id}", headers=acme_headers)

        assert response.status_code == status


class TestInfo:
    def test_owner_info_mints_token(self, test_client, acme_headers, private_image):
        response = test_client.get(
            f"/api/images/{private_image['image_id']}/info", headers=acme_headers
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["access_token"]
        assert data["access_count"] == 1
        assert data["versions_count"] == 0
        assert data["variants"]["thumbnail"]["mime_type"] == "image/webp"
        assert data["variants"]["original"]["byte_size"] == private_image["size"]
        assert data["public_urls"] is None

    def test_access_is_counted(self, test_client, product_image):
        for _ in range(3):
            test_client.get(product_image["public_urls"]["original"])

        info = test_client.get(product_image["public_urls"]["info"]).json()["data"]

        assert info["access_count"] == 4
        assert info["last_accessed_at"] is not None


class TestCatalog:
    def test_list_and_filter(self, test_client, acme_headers, product_image, private_image):
        everything = test_client.get("/api/images", headers=acme_headers).json()["data"]
        products = test_client.get(
            "/api/images", headers=acme_headers, params={"category": "product"}
        ).json()["data"]

        assert everything["pagination"]["total"] == 2
        assert products["pagination"]["total"] == 1
        assert products["images"][0]["image_id"] == product_image["image_id"]
        assert products["filters"] == {"category": "product", "sort": "newest"}

    def test_list_is_scoped_to_tenant(self, test_client, globex_headers, product_image):
        response = test_client.get("/api/images", headers=globex_headers)

        assert response.json()["data"]["images"] == []

    def test_unknown_sort(self, test_client, acme_headers):
        response = test_client.get(
            "/api/images", headers=acme_headers, params={"sort": "random"}
        )

        assert response.status_code == 400

    def test_categories(self, test_client, acme_headers, product_image, private_image):
        response = test_client.get("/api/images/categories/list", headers=acme_headers)

        assert sorted(response.json()["data"]["categories"]) == ["personal", "product"]


class TestModify:
    def test_metadata_update_can_publish(
        self, test_client, acme_headers, private_image
    ):
        image_id = private_image["image_id"]

        response = test_client.patch(
            f"/api/images/{image_id}/metadata",
            headers=acme_headers,
            json={"tags": "holiday,beach", "title": "Beach", "is_public": True},
        )

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["tags"] == ["holiday", "beach"]
        assert data["title"] == "Beach"
        assert data["is_public"] is True
        assert test_client.get(f"/api/images/{image_id}").status_code == 200

    def test_metadata_update_by_other_tenant(
        self, test_client, globex_headers, private_image
    ):
        response = test_client.patch(
            f"/api/images/{private_image['image_id']}/metadata",
            headers=globex_headers,
            json={"title": "Mine"},
        )

        assert response.status_code == 404

    def test_replace_keeps_id(
        self, test_client, acme_headers, private_image, transparent_png
    ):
        image_id = private_image["image_id"]

        response = test_client.put(
            f"/api/images/{image_id}",
            headers=acme_headers,
            files={"file": ("logo.png", transparent_png, "image/png")},
        )

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["image_id"] == image_id
        assert data["mime_type"] == "image/png"
        assert data["metadata"]["has_alpha"] is True
        served = test_client.get(data["urls"]["original"])
        assert served.content == transparent_png
        info = test_client.get(
            f"/api/images/{image_id}/info", headers=acme_headers
        ).json()["data"]
        assert info["versions_count"] == 1

    def test_delete_then_purge(
        self, test_client, acme_headers, private_image, test_settings
    ):
        image_id = private_image["image_id"]
        assert stored_files(test_settings.absolute_storage_dir)

        response = test_client.delete(f"/api/images/{image_id}", headers=acme_headers)

        assert response.status_code == 200
        assert response.json()["data"]["message"] == "Image deleted successfully"
        assert (
            test_client.get(f"/api/images/{image_id}", headers=acme_headers).status_code
            == 404
        )
        assert (
            test_client.delete(f"/api/images/{image_id}", headers=acme_headers).status_code
            == 404
        )

        deadline = time.monotonic() + 5
        while stored_files(test_settings.absolute_storage_dir) and time.monotonic() < deadline:
            time.sleep(0.05)
        assert stored_files(test_settings.absolute_storage_dir) == []


def test_health(test_client):
    response = test_client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "image-asset", "database": True}
