from app.models import CatalogProduct, ImportedProduct, ImportJob


def test_import_batch_creates_pending_products(client, session, headers, raw_product):
    response = client.post("/v1/imports", json={"products": [raw_product(1), raw_product(2)]}, headers=headers)
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "completed"
    assert payload["total_products"] == 2
    assert payload["processed"] == 2
    assert payload["successful"] == 2
    assert payload["failed"] == 0
    assert payload["auto_approved"] == 0
    assert payload["pending_approval"] == 2

    rows = session.query(ImportedProduct).all()
    assert {row.approval_status for row in rows} == {"pending"}
    assert session.query(CatalogProduct).count() == 0


def test_reimport_of_same_source_url_is_skipped(client, session, headers, raw_product):
    first = client.post("/v1/imports", json={"products": [raw_product(1)]}, headers=headers).json()
    second = client.post("/v1/imports", json={"products": [raw_product(1), raw_product(2)]}, headers=headers).json()

    assert first["successful"] == 1
    assert second["status"] == "completed"
    assert second["processed"] == 2
    assert second["successful"] == 1
    assert second["skipped"] == 1
    assert second["failed"] == 0
    url = raw_product(1)["url"]
    assert session.query(ImportedProduct).filter(ImportedProduct.source_url == url).count() == 1


def test_duplicate_within_one_batch_is_skipped(client, session, headers, raw_product):
    response = client.post("/v1/imports", json={"products": [raw_product(5), raw_product(5)]}, headers=headers)
    payload = response.json()
    assert payload["successful"] == 1
    assert payload["skipped"] == 1
    assert session.query(ImportedProduct).count() == 1


def test_same_source_url_is_imported_per_organization(client, session, make_headers, raw_product):
    client.post("/v1/imports", json={"products": [raw_product(1)]}, headers=make_headers("org-a"))
    client.post("/v1/imports", json={"products": [raw_product(1)]}, headers=make_headers("org-b"))

    assert session.query(ImportedProduct).count() == 2


def test_auto_approve_publishes_catalog_products(client, session, headers, raw_product):
    response = client.post(
        "/v1/imports",
        json={
            "products": [raw_product(1, price=100.0)],
            "import_settings": {"auto_approve": True, "price_adjustment": {"type": "percentage", "value": 20}},
        },
        headers=headers,
    )
    payload = response.json()
    assert payload["auto_approved"] == 1
    assert payload["pending_approval"] == 0

    imported = session.query(ImportedProduct).one()
    product = session.query(CatalogProduct).one()
    assert imported.approval_status == "approved"
    assert imported.approved_by == "user-1"
    assert imported.approved_at is not None
    assert imported.product_id == product.id
    assert float(product.price) == 120.0
    assert product.source_platform == "shein"
    assert product.source_url == raw_product(1)["url"]
    assert product.source_product_id == "shein-1"
    assert imported.processed_data["original_price"] == 100.0


def test_category_mapping_is_applied(client, session, headers, raw_product):
    client.post(
        "/v1/imports",
        json={"products": [raw_product(1)], "import_settings": {"category_mapping": {"Lighting": "home-decor"}}},
        headers=headers,
    )
    imported = session.query(ImportedProduct).one()
    assert imported.processed_data["category"] == "home-decor"


def test_failed_items_do_not_abort_the_batch(client, session, headers, raw_product, monkeypatch):
    import app.services.imports as imports_service

    real_publish = imports_service.publish_imported_product

    def flaky_publish(db, imported, source_platform):
        if imported.processed_data["name"].startswith("Broken"):
            raise RuntimeError("catalog insert rejected")
        return real_publish(db, imported, source_platform)

    monkeypatch.setattr(imports_service, "publish_imported_product", flaky_publish)

    products = [raw_product(1), raw_product(2, name="Broken Lamp"), raw_product(3), raw_product(4, name="Broken Vase")]
    client.post("/v1/imports", json={"products": [raw_product(3)]}, headers=headers)
    response = client.post(
        "/v1/imports",
        json={"products": products, "import_settings": {"auto_approve": True}},
        headers=headers,
    )
    payload = response.json()

    assert payload["status"] == "completed"
    assert payload["processed"] == 4
    assert payload["failed"] == 2
    assert payload["successful"] == 1
    assert payload["skipped"] == 1
    assert len(payload["errors"]) == 2
    assert "catalog insert rejected" in payload["errors"][0]
    # A failed item leaves no half-written import behind.
    assert session.query(ImportedProduct).filter(ImportedProduct.source_url == raw_product(2)["url"]).count() == 0


def test_malformed_record_fails_only_that_item(client, session, headers, raw_product):
    broken = raw_product(2)
    del broken["name"]
    broken["price"] = "abc"

    response = client.post("/v1/imports", json={"products": [raw_product(1), broken, raw_product(3)]}, headers=headers)
    assert response.status_code == 200
    payload = response.json()

    assert payload["status"] == "completed"
    assert payload["processed"] == 3
    assert payload["successful"] == 2
    assert payload["failed"] == 1
    assert payload["errors"][0].startswith(f"Product {broken['id']}: invalid or missing fields:")
    assert "name" in payload["errors"][0]
    assert "price" in payload["errors"][0]
    assert {row.source_url for row in session.query(ImportedProduct).all()} == {
        raw_product(1)["url"],
        raw_product(3)["url"],
    }


def test_integrity_errors_other_than_duplicates_are_failures(client, session, headers, raw_product, monkeypatch):
    import app.services.imports as imports_service
    from sqlalchemy.exc import IntegrityError

    def constraint_violation(*_args, **_kwargs):
        raise IntegrityError("INSERT INTO products", {}, Exception("NOT NULL constraint failed: products.name"))

    monkeypatch.setattr(imports_service, "publish_imported_product", constraint_violation)

    response = client.post(
        "/v1/imports",
        json={"products": [raw_product(1)], "import_settings": {"auto_approve": True}},
        headers=headers,
    )
    payload = response.json()

    assert payload["skipped"] == 0
    assert payload["failed"] == 1
    assert payload["status"] == "failed"
    assert "NOT NULL constraint failed" in payload["errors"][0]
    assert session.query(ImportedProduct).count() == 0


def test_integrity_error_from_a_concurrent_import_is_a_skip(client, session, headers, raw_product, monkeypatch):
    import app.services.imports as imports_service
    from sqlalchemy.exc import IntegrityError

    coordinator = imports_service.ImportCoordinator
    real_import_item = coordinator._import_item

    def racing_import_item(self, job, product, import_settings):
        # Another request commits the same URL between the pre-check and the insert.
        real_import_item(self, job, product, import_settings)
        self.db.commit()
        raise IntegrityError("INSERT INTO imported_products", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(coordinator, "_import_item", racing_import_item)

    payload = client.post("/v1/imports", json={"products": [raw_product(1)]}, headers=headers).json()

    assert payload["skipped"] == 1
    assert payload["failed"] == 0
    assert payload["errors"] == []
    assert session.query(ImportedProduct).count() == 1


def test_job_fails_only_when_every_item_fails(client, session, headers, raw_product, monkeypatch):
    import app.services.imports as imports_service

    def broken_publish(*_args, **_kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(imports_service, "publish_imported_product", broken_publish)

    products = [raw_product(index) for index in range(12)]
    response = client.post(
        "/v1/imports",
        json={"products": products, "import_settings": {"auto_approve": True}},
        headers=headers,
    )
    payload = response.json()

    assert payload["status"] == "failed"
    assert payload["failed"] == 12
    assert payload["processed"] == 12
    assert len(payload["errors"]) == 10

    job = session.get(ImportJob, payload["import_job_id"])
    assert job.status == "failed"
    assert len(job.error_log) == 10
    assert job.completed_at is not None


def test_empty_batch_completes(client, headers):
    payload = client.post("/v1/imports", json={"products": []}, headers=headers).json()
    assert payload["status"] == "completed"
    assert payload["total_products"] == 0


def test_import_job_progress_is_scoped_to_organization(client, headers, make_headers, raw_product):
    job_id = client.post("/v1/imports", json={"products": [raw_product(1)]}, headers=headers).json()["import_job_id"]

    own = client.get(f"/v1/imports/{job_id}", headers=headers)
    assert own.status_code == 200
    assert own.json()["successful"] == 1

    other = client.get(f"/v1/imports/{job_id}", headers=make_headers("org-other"))
    assert other.status_code == 404
    assert other.json()["detail"]["code"] == "not_found"


def test_import_requires_bearer_token(client, raw_product):
    response = client.post("/v1/imports", json={"products": [raw_product(1)]})
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "unauthorized"


def test_import_rejects_unknown_token(client, raw_product):
    response = client.post("/v1/imports", json={"products": [raw_product(1)]}, headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_import_requires_import_permission(client, make_headers, raw_product):
    headers = make_headers(permissions=["orders:fulfill"])
    response = client.post("/v1/imports", json={"products": [raw_product(1)]}, headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"]["details"]["required"] == "import:products"


def test_import_validates_price_adjustment_type(client, headers, raw_product):
    response = client.post(
        "/v1/imports",
        json={"products": [raw_product(1)], "import_settings": {"price_adjustment": {"type": "double", "value": 2}}},
        headers=headers,
    )
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
