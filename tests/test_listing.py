import math
import unittest

from release_manager.domain.releases import ReleaseRecord
from release_manager.services.listing import query


def _record(i, name="plugin", version="1.0", ts=None):
    return ReleaseRecord(
        id=f"id{i:03d}",
        plugin_name=name,
        plugin_version=version,
        gh_commit_tag=f"v{i}",
        gh_commit_timestamp=ts if ts is not None else 1_600_000_000 + i,
        gh_commit_url="",
        ci_job_url="",
        build_hash="",
        build_file="",
    )


class TestListingQuery(unittest.TestCase):
    def test_defaults_to_timestamp_descending_first_page_of_twenty(self):
        records = [_record(i) for i in range(45)]
        page = query(records)
        self.assertEqual(page.order_by, "gh_commit_timestamp")
        self.assertEqual(page.order, "desc")
        self.assertEqual(page.page, 1)
        self.assertEqual(page.total_items, 45)
        self.assertEqual(page.total_pages, 3)
        expected = sorted((str(r.gh_commit_timestamp) for r in records), reverse=True)[:20]
        self.assertEqual([str(r.gh_commit_timestamp) for r in page.items], expected)

    def test_last_page_holds_remainder_and_beyond_last_is_empty(self):
        records = [_record(i) for i in range(45)]
        last = query(records, page=math.ceil(45 / 20))
        self.assertEqual(len(last.items), 5)
        beyond = query(records, page=4)
        self.assertEqual(beyond.items, [])
        self.assertEqual(beyond.total_items, 45)
        self.assertEqual(beyond.total_pages, 3)

    def test_timestamps_compare_as_strings(self):
        records = [_record(1, ts=999), _record(2, ts=1000), _record(3, ts=50)]
        page = query(records, order_by="gh_commit_timestamp", order_direction="asc")
        self.assertEqual([r.gh_commit_timestamp for r in page.items], [1000, 50, 999])

    def test_versions_compare_lexicographically(self):
        records = [_record(1, version="2.10"), _record(2, version="2.9"), _record(3, version="2.1")]
        page = query(records, order_by="plugin_version", order_direction="desc")
        self.assertEqual([r.plugin_version for r in page.items], ["2.9", "2.10", "2.1"])

    def test_ties_keep_input_order_in_both_directions(self):
        records = [_record(1, name="b"), _record(2, name="a"), _record(3, name="b"), _record(4, name="a")]
        asc = query(records, order_by="plugin_name", order_direction="asc")
        self.assertEqual([r.id for r in asc.items], ["id002", "id004", "id001", "id003"])
        desc = query(records, order_by="plugin_name", order_direction="desc")
        self.assertEqual([r.id for r in desc.items], ["id001", "id003", "id002", "id004"])

    def test_unknown_column_falls_back_to_timestamp(self):
        records = [_record(i) for i in range(3)]
        page = query(records, order_by="build_hash; DROP TABLE", order_direction="desc")
        self.assertEqual(page.order_by, "gh_commit_timestamp")
        self.assertEqual([r.id for r in page.items], ["id002", "id001", "id000"])

    def test_unknown_direction_means_ascending(self):
        records = [_record(i) for i in range(3)]
        page = query(records, order_direction="sideways")
        self.assertEqual(page.order, "asc")
        self.assertEqual([r.id for r in page.items], ["id000", "id001", "id002"])
        self.assertEqual(query(records, order_direction="DESC").order, "desc")

    def test_invalid_pages_and_sizes_are_normalised(self):
        records = [_record(i) for i in range(3)]
        self.assertEqual(query(records, page=0).page, 1)
        self.assertEqual(query(records, page="abc").page, 1)
        self.assertEqual(query(records, page="2", page_size=2).page, 2)
        self.assertEqual(query(records, page_size=0).page_size, 20)

    def test_empty_collection(self):
        page = query([])
        self.assertEqual(page.items, [])
        self.assertEqual(page.total_items, 0)
        self.assertEqual(page.total_pages, 0)
