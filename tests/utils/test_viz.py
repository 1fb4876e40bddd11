from pathlib import Path

import pytest
from pyv_mem.runtime.cache import WaySnapshot
from pyv_mem.utils.viz import export_cache_ascii, export_hit_timeline


@pytest.fixture
def sample_timeline():
    """Provides a sample timeline for testing."""
    return [
        {'step': 0, 'kind': 'R', 'address': 0x40, 'width': 4, 'value': 0, 'hit': False},
        {'step': 1, 'kind': 'R', 'address': 0x40, 'width': 4, 'value': 0, 'hit': True},
        {'step': 2, 'kind': 'W', 'address': 0x80, 'width': 1, 'value': 9, 'hit': False},
    ]


class TestExportHitTimeline:
    def test_empty_timeline(self, tmp_path: Path):
        """Tests that an HTML file is created for an empty timeline."""
        output_path = tmp_path / "timeline.html"

        export_hit_timeline([], str(output_path))

        assert output_path.exists()
        assert "No data to display" in output_path.read_text()

    def test_timeline(self, sample_timeline, tmp_path: Path):
        output_path = tmp_path / "timeline.html"

        export_hit_timeline(sample_timeline, str(output_path))

        content = output_path.read_text(encoding='utf-8')
        assert "Memory Access Timeline" in content
        assert "0x00000080" in content
        assert "miss" in content


class TestExportCacheAscii:
    def test_disabled_cache(self):
        assert export_cache_ascii("ICache", []) == "ICache: cache is disabled."

    def test_contents(self):
        snapshot = [
            [WaySnapshot(row=0, way=0, tag=0x1F, valid=True, dirty=True),
             WaySnapshot(row=0, way=1, tag=0, valid=False, dirty=False)],
            [WaySnapshot(row=1, way=0, tag=0x2, valid=True, dirty=False),
             WaySnapshot(row=1, way=1, tag=0, valid=False, dirty=False)],
        ]
        chart = export_cache_ascii("DCache", snapshot)
        lines = chart.splitlines()

        assert lines[0] == "DCache contents (2 rows x 2 ways)"
        assert "way 0" in lines[2] and "way 1" in lines[2]
        assert "V D 0x1F" in lines[3]
        assert "V - 0x2" in lines[4]
        assert lines[4].count("- - -") == 1
