"""Tests for TableController state handling and evaluation."""

import asyncio
from typing import List

import httpx
import pytest

from odata_table.core.requests import (
    FilterChange,
    LoadAll,
    PageChange,
    Refresh,
    Reload,
    SortChange,
)
from odata_table.core.state import TableController
from odata_table.core.types import Mode, SortOrder, TableResult
from odata_table.remote.fetcher import RemoteFetcher

BASE_URL = "https://example.test/service/People"


def collect(controller: TableController) -> List[TableResult]:
    emissions: List[TableResult] = []
    controller.subscribe(emissions.append)
    return emissions


def is_count_request_url(url: httpx.URL) -> bool:
    return url.path.endswith("count")


def is_count_request(request: httpx.Request) -> bool:
    return is_count_request_url(request.url)


class TestControllerConstruction:
    """Tests for constructor validation."""

    def test_defaults(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        assert controller.mode == Mode.LOCAL
        assert controller.state.page == 1
        assert controller.state.page_size == 8
        assert controller.last_result is None
        assert not controller.can_reload

    def test_server_mode_requires_fetcher(self, people_columns, settings):
        with pytest.raises(ValueError, match="fetcher"):
            TableController(people_columns, mode="server", settings=settings)

    def test_server_mode_rejects_records(self, people_columns, people_records, settings):
        fetcher = RemoteFetcher(BASE_URL)
        with pytest.raises(ValueError):
            TableController(
                people_columns,
                mode="server",
                fetcher=fetcher,
                records=people_records,
                settings=settings,
            )

    def test_duplicate_column_ids(self, settings):
        with pytest.raises(ValueError, match="Duplicate"):
            TableController([{"id": "a"}, {"id": "a"}], settings=settings)

    def test_dict_columns_accepted(self, settings):
        controller = TableController(
            [{"id": "Age", "dataType": "number", "sortable": True}], settings=settings
        )
        assert controller.columns[0].caption == "Age"
        assert controller.columns[0].sortable

    def test_zero_page_size_rejected(self, people_columns, settings):
        with pytest.raises(ValueError, match="page_size"):
            TableController(people_columns, page_size=0, settings=settings)

    def test_repr(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        assert "mode='local'" in repr(controller)


class TestNormalization:
    """Tests for filter and sort input handling."""

    @pytest.mark.asyncio
    async def test_empty_editor_rows_dropped(self, people_columns, people_records, settings):
        controller = TableController(
            people_columns, records=people_records, settings=settings
        )
        await controller.set_filters(
            [
                {"column": "", "value": "x"},
                {"column": "FirstName", "value": ""},
                {"column": "FirstName", "value": "el"},
            ]
        )
        assert len(controller.state.filters) == 1
        assert controller.state.filters[0].relation.value == "contains"

    @pytest.mark.asyncio
    async def test_sorter_defaults_to_ascending(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        await controller.set_sorters([{"column": "Age"}, {"column": None}])
        assert len(controller.state.sorters) == 1
        assert controller.state.sorters[0].order == SortOrder.ASC

    @pytest.mark.asyncio
    async def test_unknown_column(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        with pytest.raises(ValueError, match="Available columns"):
            await controller.set_filters([{"column": "Nope", "value": "x"}])

    @pytest.mark.asyncio
    async def test_not_filterable(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        with pytest.raises(ValueError, match="not filterable"):
            await controller.set_filters([{"column": "Concurrency", "value": "1"}])

    @pytest.mark.asyncio
    async def test_not_sortable(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        with pytest.raises(ValueError, match="not sortable"):
            await controller.set_sorters([{"column": "Concurrency"}])

    @pytest.mark.asyncio
    async def test_invalid_page(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        with pytest.raises(ValueError):
            await controller.set_page(0)


class TestLocalMode:
    """Tests for in-memory evaluation."""

    @pytest.mark.asyncio
    async def test_refresh_emits_first_page(self, people_columns, people_records, settings):
        controller = TableController(
            people_columns, records=people_records, settings=settings
        )
        emissions = collect(controller)

        result = await controller.refresh()

        assert emissions == [result]
        assert len(result.rows) == 8
        assert result.total_count == 10
        assert result.total_pages == 2
        assert not result.is_loading
        assert result.error is None

    @pytest.mark.asyncio
    async def test_filter_change_resets_page(self, people_columns, people_records, settings):
        controller = TableController(
            people_columns, records=people_records, settings=settings
        )
        await controller.set_page(2)
        assert controller.state.page == 2

        result = await controller.set_filters(
            [{"column": "Gender", "relation": "equals", "value": "male"}]
        )
        assert controller.state.page == 1
        assert result.total_count == 9

    @pytest.mark.asyncio
    async def test_sort_change_resets_page(self, people_columns, people_records, settings):
        controller = TableController(
            people_columns, records=people_records, settings=settings
        )
        await controller.set_page(2)
        result = await controller.set_sorters([{"column": "Age", "order": "desc"}])
        assert controller.state.page == 1
        assert result.rows[0]["UserName"] == "javieralfred"

    @pytest.mark.asyncio
    async def test_page_past_end_is_clamped_in_state(
        self, people_columns, people_records, settings
    ):
        controller = TableController(
            people_columns, records=people_records, settings=settings
        )
        result = await controller.set_page(999)
        assert result.page == 2
        assert controller.state.page == 2

    @pytest.mark.asyncio
    async def test_load_all_replaces_records(self, people_columns, people_records, settings):
        controller = TableController(people_columns, settings=settings)
        result = await controller.dispatch(LoadAll(people_records[:3]))
        assert result.total_count == 3
        assert controller.row_key(result.rows[0]) is None

    @pytest.mark.asyncio
    async def test_row_key_uses_id_field(self, people_columns, people_records, settings):
        controller = TableController(
            people_columns, records=people_records, id_field="UserName", settings=settings
        )
        result = await controller.refresh()
        assert controller.row_key(result.rows[0]) == "russellwhyte"

    @pytest.mark.asyncio
    async def test_unsubscribe(self, people_columns, people_records, settings):
        controller = TableController(
            people_columns, records=people_records, settings=settings
        )
        emissions: List[TableResult] = []
        unsubscribe = controller.subscribe(emissions.append)
        await controller.refresh()
        unsubscribe()
        await controller.refresh()
        assert len(emissions) == 1


class TestReload:
    """Tests for re-fetching the local dataset."""

    @pytest.mark.asyncio
    async def test_reload_fetches_all(self, people_columns, people_records, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if "skip" in request.url.params:
                return httpx.Response(200, json={"value": people_records[5:]})
            return httpx.Response(
                200,
                json={"value": people_records[:5], "@odata.nextLink": f"{BASE_URL}?skip=5"},
            )

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(people_columns, fetcher=fetcher, settings=settings)
        emissions = collect(controller)

        result = await controller.dispatch(Reload())

        assert controller.can_reload
        assert emissions[0].is_loading
        assert result.total_count == 10
        assert not result.is_loading
        assert not controller.is_loading

    @pytest.mark.asyncio
    async def test_reload_failure_keeps_records(
        self, people_columns, people_records, settings
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, fetcher=fetcher, records=people_records, settings=settings
        )

        result = await controller.reload()
        assert result.error == settings.error_message
        assert result.rows == []

        result = await controller.refresh()
        assert result.total_count == 10

    @pytest.mark.asyncio
    async def test_malformed_body_becomes_error_emission(
        self, people_columns, people_records, settings
    ):
        """Test that a bad continuation link is reported, not raised."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"value": [], "@odata.nextLink": 123})

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, fetcher=fetcher, records=people_records, settings=settings
        )

        result = await controller.reload()

        assert result.error == settings.error_message
        assert not controller.is_loading

    @pytest.mark.asyncio
    async def test_scalar_rows_become_error_emission(self, people_columns, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if is_count_request(request):
                return httpx.Response(200, text="3")
            return httpx.Response(200, json={"value": [1, 2, 3]})

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, mode="server", fetcher=fetcher, settings=settings
        )

        result = await controller.refresh()

        assert result.error == settings.error_message
        assert result.rows == []

    @pytest.mark.asyncio
    async def test_reload_without_fetcher(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        with pytest.raises(RuntimeError):
            await controller.reload()

    @pytest.mark.asyncio
    async def test_load_all_supersedes_reload(
        self, people_columns, people_records, settings
    ):
        """Test that records loaded during a reload win over the reload's result."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await release.wait()
            return httpx.Response(200, json={"value": people_records})

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(people_columns, fetcher=fetcher, settings=settings)

        reload_task = asyncio.create_task(controller.reload())
        await started.wait()
        await controller.load_all(people_records[:2])
        release.set()

        assert await reload_task is None
        assert controller.last_result.total_count == 2
        assert not controller.is_loading


class TestServerMode:
    """Tests for remote evaluation."""

    @pytest.mark.asyncio
    async def test_page_request(self, people_columns, people_records, settings):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url)
            if is_count_request(request):
                return httpx.Response(200, text="10")
            return httpx.Response(200, json={"value": people_records[8:]})

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, mode="server", fetcher=fetcher, settings=settings
        )
        emissions = collect(controller)

        result = await controller.dispatch(PageChange(2))

        data_url = next(url for url in requested if not is_count_request_url(url))
        assert data_url.params["$skip"] == "8"
        assert data_url.params["$top"] == "8"
        assert [e.is_loading for e in emissions] == [True, False]
        assert result.total_count == 10
        assert result.total_pages == 2
        assert len(result.rows) == 2

    @pytest.mark.asyncio
    async def test_filter_sent_to_both_requests(self, people_columns, settings):
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url)
            if is_count_request(request):
                return httpx.Response(200, text="0")
            return httpx.Response(200, json={"value": []})

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, mode="server", fetcher=fetcher, settings=settings
        )
        await controller.dispatch(
            FilterChange([{"column": "Age", "relation": "equals", "value": "30"}])
        )
        await controller.dispatch(SortChange([{"column": "LastName", "order": "desc"}]))

        data_url = [url for url in requested if not is_count_request_url(url)][-1]
        count_url = [url for url in requested if is_count_request_url(url)][-1]
        assert data_url.params["$filter"] == "Age eq 30"
        assert data_url.params["$orderby"] == "LastName desc"
        assert count_url.params["$filter"] == "Age eq 30"
        assert "$orderby" not in count_url.params

    @pytest.mark.asyncio
    async def test_error_emission(self, people_columns, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, mode="server", fetcher=fetcher, settings=settings
        )

        result = await controller.dispatch(Refresh())

        assert result.error == "Failed to load data from the server."
        assert result.rows == []
        assert result.total_count == 0
        assert not controller.is_loading

    @pytest.mark.asyncio
    async def test_stale_response_dropped(self, people_columns, people_records, settings):
        """Test that a slow page 1 response arriving after page 2 is ignored."""
        first_started = asyncio.Event()
        release_first = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if is_count_request(request):
                return httpx.Response(200, text="10")
            if request.url.params["$skip"] == "0":
                first_started.set()
                await release_first.wait()
                return httpx.Response(200, json={"value": people_records[:8]})
            return httpx.Response(200, json={"value": people_records[8:]})

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, mode="server", fetcher=fetcher, settings=settings
        )
        emissions = collect(controller)

        first = asyncio.create_task(controller.set_page(1))
        await first_started.wait()
        second = await controller.set_page(2)
        assert controller.is_loading is False
        release_first.set()

        assert await first is None
        assert controller.last_result is second
        assert emissions[-1] is second
        assert second.page == 2
        assert [row["UserName"] for row in second.rows] == [
            "marshallgaray",
            "elainestewart",
        ]
        assert not controller.is_loading
        assert controller.generation == 2

    @pytest.mark.asyncio
    async def test_loading_keeps_previous_rows(self, people_columns, people_records, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if is_count_request(request):
                return httpx.Response(200, text="10")
            return httpx.Response(200, json={"value": people_records[:8]})

        fetcher = RemoteFetcher(BASE_URL, transport=httpx.MockTransport(handler))
        controller = TableController(
            people_columns, mode="server", fetcher=fetcher, settings=settings
        )
        await controller.refresh()
        emissions = collect(controller)
        await controller.refresh()

        assert emissions[0].is_loading
        assert len(emissions[0].rows) == 8

    @pytest.mark.asyncio
    async def test_local_only_operations(self, people_columns, settings):
        fetcher = RemoteFetcher(BASE_URL)
        controller = TableController(
            people_columns, mode="server", fetcher=fetcher, settings=settings
        )
        with pytest.raises(RuntimeError, match="local mode"):
            await controller.load_all([])
        assert not controller.can_reload


class TestDispatch:
    """Tests for request routing."""

    @pytest.mark.asyncio
    async def test_unknown_request(self, people_columns, settings):
        controller = TableController(people_columns, settings=settings)
        with pytest.raises(TypeError):
            await controller.dispatch("next page")
