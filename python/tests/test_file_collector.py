"""
Unit tests for async FileCollector.

Tests cover:
- Input order preservation
- Existence, size, emptiness and count filters
- Encoding fallback
- Framed content for Gemini's stdin
"""

from pathlib import Path

import pytest

from gemini_bridge.config import BridgeConfig
from gemini_bridge.file_collector import CollectionResult, FileCollector


class TestFileCollectorAsync:
    """Tests for async file collection."""

    @pytest.mark.asyncio
    async def test_collect_single_file(self, file_collector: FileCollector, sample_files: dict):
        result = await file_collector.collect_paths_async([str(sample_files["python"])])

        assert result.file_count == 1
        assert "def hello_world" in result.files[0].content
        assert result.total_bytes == sample_files["python"].stat().st_size
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_preserves_input_order(self, file_collector: FileCollector, sample_files: dict):
        paths = [str(sample_files[k]) for k in ("markdown", "python", "json", "javascript")]

        result = await file_collector.collect_paths_async(paths)

        assert result.get_file_list() == paths

    @pytest.mark.asyncio
    async def test_missing_and_directories_skipped(self, file_collector: FileCollector, project_dir: Path, sample_files: dict):
        paths = [str(project_dir / "missing.py"), str(project_dir / "src"), str(sample_files["python"])]

        result = await file_collector.collect_paths_async(paths)

        assert result.get_file_list() == [str(sample_files["python"])]
        assert any("file not found" in s for s in result.skipped_files)
        assert any("not a regular file" in s for s in result.skipped_files)

    @pytest.mark.asyncio
    async def test_empty_file_skipped(self, file_collector: FileCollector, project_dir: Path):
        empty = project_dir / "empty.py"
        empty.write_text("")

        result = await file_collector.collect_paths_async([str(empty)])

        assert result.file_count == 0
        assert any("empty file" in s for s in result.skipped_files)

    @pytest.mark.asyncio
    async def test_size_cap_is_inclusive(self, bridge_config: BridgeConfig, make_file):
        bridge_config.max_file_size_bytes = 100
        at_cap = make_file("at_cap.txt", 100)
        over_cap = make_file("over_cap.txt", 101)

        result = await FileCollector(bridge_config).collect_paths_async([str(over_cap), str(at_cap)])

        assert result.get_file_list() == [str(at_cap)]
        assert any("too large" in s for s in result.skipped_files)

    @pytest.mark.asyncio
    async def test_max_files_keeps_first_survivors(self, bridge_config: BridgeConfig, project_dir: Path, make_file):
        bridge_config.max_files = 2
        paths = [str(project_dir / "missing.txt")] + [str(make_file(f"f{i}.txt", 10)) for i in range(4)]

        result = await FileCollector(bridge_config).collect_paths_async(paths)

        assert result.get_file_list() == paths[1:3]
        assert sum("file limit reached" in s for s in result.skipped_files) == 2

    @pytest.mark.asyncio
    async def test_latin1_fallback(self, file_collector: FileCollector, project_dir: Path):
        legacy = project_dir / "legacy.txt"
        legacy.write_bytes(b"caf\xe9 au lait\n")

        result = await file_collector.collect_paths_async([str(legacy)])

        assert result.files[0].content == "café au lait\n"

    @pytest.mark.asyncio
    async def test_nothing_to_collect(self, file_collector: FileCollector):
        result = await file_collector.collect_paths_async([])

        assert result.file_count == 0
        assert result.get_combined_content() == ""


class TestCollectionResult:
    """Tests for content framing."""

    def test_combined_content_headers(self, file_collector: FileCollector, sample_files: dict):
        paths = [str(sample_files["python"]), str(sample_files["markdown"])]

        content = file_collector.collect_paths(paths).get_combined_content()

        first = content.index(f"=== File: {paths[0]} ===")
        second = content.index(f"=== File: {paths[1]} ===")
        assert first == 0
        assert first < content.index("def hello_world") < second
        assert "# Sample Project" in content[second:]

    def test_iter_content_one_block_per_file(self, file_collector: FileCollector, sample_files: dict):
        result = file_collector.collect_paths([str(sample_files["python"]), str(sample_files["json"])])

        blocks = list(result.iter_content())

        assert len(blocks) == 2
        assert blocks[1].startswith(f"=== File: {sample_files['json']} ===\n")

    def test_extension(self, file_collector: FileCollector, sample_files: dict):
        result = file_collector.collect_paths([str(sample_files["markdown"])])

        assert result.files[0].extension == ".md"

    def test_empty_result(self):
        result = CollectionResult()

        assert result.file_count == 0
        assert result.get_file_list() == []
