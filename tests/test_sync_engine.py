"""Tests for the Delivery transfer engine."""

import asyncio
import base64
import hashlib
from pathlib import Path
from unittest.mock import patch

import pytest

from pydelivery.exceptions import DeliveryAPIError, DeliveryConfigError
from pydelivery.store import ObjectInfo, S3Store
from pydelivery.sync import Delivery, DirectoryScanner, gather_in_order
from pydelivery.sync.cache_policy import LONG_LIVED_CACHE, REQUIRE_REVALIDATION


def _etag(content: bytes) -> str:
    return f'"{hashlib.md5(content).hexdigest()}"'


class TestDeliveryInit:
    """Test Delivery construction."""

    def test_missing_bucket_raises(self, store):
        with pytest.raises(DeliveryConfigError, match="bucket is required"):
            Delivery(bucket="", store=store)

    def test_blank_bucket_raises(self, store):
        with pytest.raises(DeliveryConfigError):
            Delivery(bucket="   ", store=store)

    def test_defaults(self, store):
        delivery = Delivery(bucket="b", store=store)

        assert delivery.base_path == ""
        assert delivery.store is store
        assert delivery.comparator.store is store

    def test_creates_s3_store_by_default(self):
        delivery = Delivery(
            bucket="assets", base_path="project", use_accelerate_endpoint=True
        )

        assert isinstance(delivery.store, S3Store)
        assert delivery.store.bucket == "assets"
        assert delivery.store.use_accelerate_endpoint is True

    def test_conflicting_store_options_fail_fast(self):
        with pytest.raises(DeliveryConfigError):
            Delivery(
                bucket="assets",
                use_accelerate_endpoint=True,
                endpoint_url="http://localhost:9000",
            )

    @pytest.mark.asyncio
    async def test_context_manager_closes_store(self, store):
        async with Delivery(bucket="b", store=store):
            pass

        assert store.closed is True


class TestUploadFile:
    """Test single file uploads."""

    @pytest.mark.asyncio
    async def test_uploads_new_file(self, delivery, store, tmp_path):
        path = tmp_path / "counties.json"
        path.write_text('{"a": 1}')

        outcome = await delivery.upload_file(path, "counties.json", is_public=True)

        assert outcome.key == "counties.json"
        assert outcome.is_identical is False
        assert outcome.is_public is True
        assert outcome.size == 8
        assert outcome.etag == hashlib.md5(b'{"a": 1}').hexdigest()
        assert outcome.content_type == "application/json"
        assert store.objects["counties.json"] == b'{"a": 1}'
        assert store.metadata["counties.json"]["acl"] == "public-read"
        assert store.metadata["counties.json"]["cache_control"] is None

    @pytest.mark.asyncio
    async def test_sends_content_md5(self, delivery, store, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"abc")

        await delivery.upload_file(path, "file.txt")

        expected = base64.b64encode(hashlib.md5(b"abc").digest()).decode()
        assert store.metadata["file.txt"]["content_md5"] == expected

    @pytest.mark.asyncio
    async def test_passes_file_path_not_contents(self, delivery, store, tmp_path):
        """Test the store receives the path so it can stream the file."""
        path = tmp_path / "file.txt"
        path.write_bytes(b"abc")

        await delivery.upload_file(path, "file.txt")

        assert store.sources == [path]

    @pytest.mark.asyncio
    async def test_private_by_default(self, delivery, store, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"abc")

        outcome = await delivery.upload_file(path, "file.txt")

        assert outcome.is_public is False
        assert store.metadata["file.txt"]["acl"] == "private"

    @pytest.mark.asyncio
    async def test_key_includes_base_path(self, store, tmp_path):
        delivery = Delivery(bucket="b", base_path="our-project", store=store)
        path = tmp_path / "data.csv"
        path.write_text("a,b")

        outcome = await delivery.upload_file(path, "output/data.csv")

        assert outcome.key == "our-project/output/data.csv"
        assert "our-project/output/data.csv" in store.objects

    @pytest.mark.asyncio
    async def test_idempotent(self, delivery, store, tmp_path):
        """Uploading an unchanged file twice writes once."""
        path = tmp_path / "file.txt"
        path.write_bytes(b"unchanged")

        first = await delivery.upload_file(path, "file.txt")
        second = await delivery.upload_file(path, "file.txt")

        assert first.is_identical is False
        assert second.is_identical is True
        assert second.cache_control is None
        assert second.size == first.size
        assert store.puts == ["file.txt"]

    @pytest.mark.asyncio
    async def test_changed_file_is_uploaded_again(self, delivery, store, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"v1")
        await delivery.upload_file(path, "file.txt")

        path.write_bytes(b"v2")
        outcome = await delivery.upload_file(path, "file.txt")

        assert outcome.is_identical is False
        assert store.objects["file.txt"] == b"v2"
        assert store.puts == ["file.txt", "file.txt"]

    @pytest.mark.asyncio
    async def test_cache_headers_for_html(self, delivery, store, tmp_path):
        path = tmp_path / "index.html"
        path.write_text("<html></html>")

        outcome = await delivery.upload_file(path, "index.html", should_cache=True)

        assert outcome.cache_control == REQUIRE_REVALIDATION
        assert store.metadata["index.html"]["cache_control"] == "no-cache"
        assert store.metadata["index.html"]["content_type"] == "text/html"

    @pytest.mark.asyncio
    async def test_cache_override(self, delivery, store, tmp_path):
        path = tmp_path / "index.html"
        path.write_text("<html></html>")

        await delivery.upload_file(
            path, "index.html", should_cache=True, cache_control_override="max-age=60"
        )

        assert store.metadata["index.html"]["cache_control"] == "max-age=60"

    @pytest.mark.asyncio
    async def test_override_ignored_without_should_cache(self, delivery, store, tmp_path):
        path = tmp_path / "index.html"
        path.write_text("<html></html>")

        await delivery.upload_file(
            path, "index.html", cache_control_override="max-age=60"
        )

        assert store.metadata["index.html"]["cache_control"] is None

    @pytest.mark.asyncio
    async def test_classifies_relative_path_not_key(self, store, tmp_path):
        """Classification sees the path passed in, not the base path."""
        seen = []

        def should_be_cached(path):
            seen.append(path)
            return False

        delivery = Delivery(
            bucket="b", base_path="proj", should_be_cached=should_be_cached, store=store
        )
        path = tmp_path / "app.js"
        path.write_text("x")

        await delivery.upload_file(path, "js/app.js", should_cache=True)

        assert seen == ["js/app.js"]

    @pytest.mark.asyncio
    async def test_unknown_extension_is_octet_stream(self, delivery, store, tmp_path):
        path = tmp_path / "blob.unknownext"
        path.write_bytes(b"\x00")

        outcome = await delivery.upload_file(path, "blob.unknownext")

        assert outcome.content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_missing_local_file_raises(self, delivery, store, tmp_path):
        with pytest.raises(FileNotFoundError):
            await delivery.upload_file(tmp_path / "missing.txt", "missing.txt")

        assert store.puts == []

    @pytest.mark.asyncio
    async def test_emits_upload_event(self, delivery, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"abc")
        events = []
        delivery.on("upload", events.append)

        outcome = await delivery.upload_file(path, "file.txt")

        assert events == [outcome]

    @pytest.mark.asyncio
    async def test_emits_upload_event_when_skipped(self, delivery, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"abc")
        await delivery.upload_file(path, "file.txt")
        events = []
        delivery.on("upload", events.append)

        await delivery.upload_file(path, "file.txt")

        assert len(events) == 1
        assert events[0].is_identical is True

    @pytest.mark.asyncio
    async def test_store_error_propagates_unchanged(self, delivery, store, tmp_path):
        path = tmp_path / "file.txt"
        path.write_bytes(b"abc")
        error = DeliveryAPIError("Access Denied", 403, "AccessDenied")
        store.failures["file.txt"] = error
        events = []
        delivery.on("upload", events.append)

        with pytest.raises(DeliveryAPIError) as exc_info:
            await delivery.upload_file(path, "file.txt")

        assert exc_info.value is error
        assert events == []


class TestUploadFiles:
    """Test directory uploads."""

    @pytest.mark.asyncio
    async def test_round_trip_scenario(self, delivery, store, tmp_path):
        """Hashed JS is cached long-lived, HTML revalidates, reruns skip."""
        site = tmp_path / "site"
        site.mkdir()
        (site / "a.deadbeef.js").write_text("X")
        (site / "index.html").write_text("Y")

        outcomes = await delivery.upload_files(site, should_cache=True)

        assert [o.key for o in outcomes] == ["a.deadbeef.js", "index.html"]
        assert [o.cache_control for o in outcomes] == [
            LONG_LIVED_CACHE,
            REQUIRE_REVALIDATION,
        ]
        assert all(not o.is_identical for o in outcomes)

        store.puts.clear()
        rerun = await delivery.upload_files(site, should_cache=True)

        assert [o.key for o in rerun] == ["a.deadbeef.js", "index.html"]
        assert all(o.is_identical for o in rerun)
        assert store.puts == []

    @pytest.mark.asyncio
    async def test_prefix_and_base_path(self, store, site_dir):
        delivery = Delivery(bucket="b", base_path="project", store=store)

        outcomes = await delivery.upload_files(site_dir, prefix="output")

        assert [o.key for o in outcomes] == [
            "project/output/a.deadbeef.js",
            "project/output/assets/logo.png",
            "project/output/index.html",
        ]

    @pytest.mark.asyncio
    async def test_prefix_used_for_classification(self, store, tmp_path):
        seen = []

        def should_be_cached(path):
            seen.append(path)
            return False

        delivery = Delivery(bucket="b", should_be_cached=should_be_cached, store=store)
        site = tmp_path / "site"
        site.mkdir()
        (site / "app.js").write_text("x")

        await delivery.upload_files(site, prefix="static", should_cache=True)

        assert seen == ["static/app.js"]

    @pytest.mark.asyncio
    async def test_order_preserved_regardless_of_completion(self, delivery, store, tmp_path):
        """Outcomes follow enumeration order even if later files finish first."""
        site = tmp_path / "site"
        site.mkdir()
        names = [f"file{i}.txt" for i in range(5)]
        for i, name in enumerate(names):
            (site / name).write_text(str(i))
            store.delays[name] = 0.05 * (len(names) - i)

        outcomes = await delivery.upload_files(site)

        assert [o.key for o in outcomes] == names
        # The last file finished first
        assert store.puts[0] == "file4.txt"

    @pytest.mark.asyncio
    async def test_uploads_run_concurrently(self, delivery, store, tmp_path):
        site = tmp_path / "site"
        site.mkdir()
        in_flight = 0
        peak = 0
        original_put = store.put

        async def slow_put(key, body, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.3)
            in_flight -= 1
            await original_put(key, body, **kwargs)

        for i in range(10):
            (site / f"{i}.txt").write_text(str(i))

        with patch.object(store, "put", side_effect=slow_put):
            await delivery.upload_files(site)

        assert peak == 10

    @pytest.mark.asyncio
    async def test_emits_aggregate_event_once(self, delivery, site_dir):
        per_file = []
        batches = []
        delivery.on("upload", per_file.append)
        delivery.on("upload:all", batches.append)

        outcomes = await delivery.upload_files(site_dir)

        assert len(per_file) == 3
        assert batches == [outcomes]

    @pytest.mark.asyncio
    async def test_first_error_fails_batch(self, delivery, store, site_dir):
        """A failed file fails the whole batch and no aggregate is emitted."""
        error = DeliveryAPIError("boom", 500)
        store.failures["index.html"] = error
        batches = []
        delivery.on("upload:all", batches.append)

        with pytest.raises(DeliveryAPIError) as exc_info:
            await delivery.upload_files(site_dir)

        assert exc_info.value is error
        assert batches == []

    @pytest.mark.asyncio
    async def test_failure_cancels_in_flight_uploads(self, delivery, store, site_dir):
        store.failures["a.deadbeef.js"] = DeliveryAPIError("boom", 500)
        store.delays["index.html"] = 1.0

        with pytest.raises(DeliveryAPIError):
            await delivery.upload_files(site_dir)

        assert "index.html" not in store.objects

    @pytest.mark.asyncio
    async def test_empty_directory(self, delivery, tmp_path):
        batches = []
        delivery.on("upload:all", batches.append)

        outcomes = await delivery.upload_files(tmp_path)

        assert outcomes == []
        assert batches == [[]]

    @pytest.mark.asyncio
    async def test_dot_files_skipped_by_default(self, delivery, store, tmp_path):
        """Test .env and .git/ in a build directory are never published."""
        site = tmp_path / "site"
        (site / ".git").mkdir(parents=True)
        (site / ".git" / "config").write_text("[core]")
        (site / ".env").write_text("SECRET=1")
        (site / "index.html").write_text("Y")

        outcomes = await delivery.upload_files(site, is_public=True)

        assert [o.key for o in outcomes] == ["index.html"]
        assert list(store.objects) == ["index.html"]

    @pytest.mark.asyncio
    async def test_dot_files_uploaded_when_included(self, store, tmp_path):
        delivery = Delivery(
            bucket="b",
            store=store,
            scanner=DirectoryScanner(exclude_dot_files=False),
        )
        site = tmp_path / "site"
        site.mkdir()
        (site / ".well-known").mkdir()
        (site / ".well-known" / "security.txt").write_text("x")

        outcomes = await delivery.upload_files(site)

        assert [o.key for o in outcomes] == [".well-known/security.txt"]

    @pytest.mark.asyncio
    async def test_unreadable_directory_fails_batch(self, delivery, store, site_dir):
        """Test a directory that cannot be listed aborts the upload."""
        original_iterdir = Path.iterdir
        batches = []
        delivery.on("upload:all", batches.append)

        def iterdir(self):
            if self.name == "assets":
                raise PermissionError(13, "Permission denied", str(self))
            return original_iterdir(self)

        with patch.object(Path, "iterdir", iterdir):
            with pytest.raises(PermissionError):
                await delivery.upload_files(site_dir)

        assert store.puts == []
        assert batches == []

    @pytest.mark.asyncio
    async def test_missing_directory_raises(self, delivery, tmp_path):
        with pytest.raises(FileNotFoundError):
            await delivery.upload_files(tmp_path / "missing")


class TestDownloadFile:
    """Test single object downloads."""

    @pytest.mark.asyncio
    async def test_absent_local_file_is_not_an_error(self, delivery, store, tmp_path):
        store.objects["data.json"] = b"{}"
        dest = tmp_path / "nested" / "dir" / "data.json"

        outcome = await delivery.download_file("data.json", dest)

        assert outcome.is_identical is False
        assert outcome.key == "data.json"
        assert outcome.size == 2
        assert dest.read_bytes() == b"{}"

    @pytest.mark.asyncio
    async def test_identical_local_file_is_skipped(self, delivery, store, tmp_path):
        store.objects["data.json"] = b"{}"
        dest = tmp_path / "data.json"
        dest.write_bytes(b"{}")

        outcome = await delivery.download_file("data.json", dest)

        assert outcome.is_identical is True
        assert outcome.size == 0
        assert store.gets == []

    @pytest.mark.asyncio
    async def test_changed_local_file_is_overwritten(self, delivery, store, tmp_path):
        store.objects["data.json"] = b"new"
        dest = tmp_path / "data.json"
        dest.write_bytes(b"old")

        outcome = await delivery.download_file("data.json", dest)

        assert outcome.is_identical is False
        assert dest.read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_known_etag_skips_head(self, delivery, store, tmp_path):
        store.objects["data.json"] = b"{}"

        await delivery.download_file(
            "data.json", tmp_path / "data.json", s3_etag=_etag(b"{}")
        )

        assert store.heads == []

    @pytest.mark.asyncio
    async def test_fetches_etag_when_unknown(self, delivery, store, tmp_path):
        store.objects["data.json"] = b"{}"

        await delivery.download_file("data.json", tmp_path / "data.json")

        assert store.heads == ["data.json"]

    @pytest.mark.asyncio
    async def test_key_includes_base_path(self, store, tmp_path):
        delivery = Delivery(bucket="b", base_path="proj", store=store)
        store.objects["proj/data.json"] = b"{}"

        outcome = await delivery.download_file("data.json", tmp_path / "data.json")

        assert outcome.key == "proj/data.json"

    @pytest.mark.asyncio
    async def test_emits_download_event(self, delivery, store, tmp_path):
        store.objects["data.json"] = b"{}"
        events = []
        delivery.on("download", events.append)

        outcome = await delivery.download_file("data.json", tmp_path / "data.json")

        assert events == [outcome]


class TestDownloadFiles:
    """Test prefix downloads."""

    @pytest.mark.asyncio
    async def test_downloads_prefix(self, store, tmp_path):
        delivery = Delivery(bucket="b", base_path="proj", store=store)
        store.objects.update(
            {
                "proj/output/a.json": b"a",
                "proj/output/sub/b.json": b"b",
                "proj/other/c.json": b"c",
            }
        )

        outcomes = await delivery.download_files("output", tmp_path / "out")

        assert [o.key for o in outcomes] == [
            "proj/output/a.json",
            "proj/output/sub/b.json",
        ]
        assert (tmp_path / "out" / "a.json").read_bytes() == b"a"
        assert (tmp_path / "out" / "sub" / "b.json").read_bytes() == b"b"
        assert not (tmp_path / "out" / "c.json").exists()

    @pytest.mark.asyncio
    async def test_uses_listed_etags(self, delivery, store, tmp_path):
        store.objects.update({"a.txt": b"a", "b.txt": b"b"})

        await delivery.download_files("", tmp_path)

        assert store.heads == []

    @pytest.mark.asyncio
    async def test_skips_directory_markers(self, delivery, store, tmp_path):
        store.objects.update({"data/": b"", "data/a.txt": b"a"})

        outcomes = await delivery.download_files("data", tmp_path)

        assert [o.key for o in outcomes] == ["data/a.txt"]

    @pytest.mark.asyncio
    async def test_skips_sibling_prefix_matches(self, delivery, store, tmp_path):
        """Listing "out" also returns "output/..."; those stay out of the target."""
        store.objects.update({"out/a.txt": b"a", "output/b.txt": b"b"})

        outcomes = await delivery.download_files("out", tmp_path / "dest")

        assert [o.key for o in outcomes] == ["out/a.txt"]
        assert not (tmp_path / "output").exists()

    @pytest.mark.asyncio
    async def test_second_download_skips_everything(self, delivery, store, tmp_path):
        store.objects.update({"a.txt": b"a", "b/c.txt": b"c"})
        await delivery.download_files("", tmp_path)
        store.gets.clear()

        outcomes = await delivery.download_files("", tmp_path)

        assert all(o.is_identical for o in outcomes)
        assert store.gets == []

    @pytest.mark.asyncio
    async def test_order_follows_listing(self, delivery, store, tmp_path):
        for i in range(4):
            key = f"k{i}.txt"
            store.objects[key] = str(i).encode()
            store.delays[key] = 0.05 * (4 - i)

        outcomes = await delivery.download_files("", tmp_path)

        assert [o.key for o in outcomes] == ["k0.txt", "k1.txt", "k2.txt", "k3.txt"]
        assert store.gets[0] == "k3.txt"

    @pytest.mark.asyncio
    async def test_emits_aggregate_event(self, delivery, store, tmp_path):
        store.objects["a.txt"] = b"a"
        batches = []
        delivery.on("download:all", batches.append)

        outcomes = await delivery.download_files("", tmp_path)

        assert batches == [outcomes]

    @pytest.mark.asyncio
    async def test_missing_listing_etag_falls_back_to_head(self, delivery, store, tmp_path):
        store.objects["a.txt"] = b"a"

        async def listing(prefix):
            return [ObjectInfo(key="a.txt", etag=None, size=1)]

        with patch.object(store, "list", side_effect=listing):
            await delivery.download_files("", tmp_path)

        assert store.heads == ["a.txt"]
        assert Path(tmp_path / "a.txt").read_bytes() == b"a"


class TestGatherInOrder:
    """Test the batch settlement helper."""

    @pytest.mark.asyncio
    async def test_results_in_submission_order(self):
        async def work(value, delay):
            await asyncio.sleep(delay)
            return value

        results = await gather_in_order([work(1, 0.03), work(2, 0.01), work(3, 0.0)])

        assert results == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_cancels_siblings_on_error(self):
        cancelled = []

        async def slow():
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise

        async def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await gather_in_order([slow(), fail()])

        assert cancelled == [True]
