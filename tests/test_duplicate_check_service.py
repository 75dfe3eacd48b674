# tests/test_duplicate_check_service.py
# Tests for DuplicateCheckService (name + size matching)

from services.duplicate_check_service import DuplicateCandidate, DuplicateCheckService, file_matches


class TestCheckExisting:

    def test_name_and_size_rules(self, destination, device_root, make_file):
        make_file(destination / "IMG_0001.jpg", 2_048_000)

        candidates = [
            (str(device_root / "DCIM" / "IMG_0001.jpg"), 2_048_000),  # same name, same size
            (str(device_root / "DCIM" / "IMG_0001.jpg"), 2_047_999),  # same name, other size
            (str(device_root / "DCIM" / "IMG_0002.jpg"), 2_048_000),  # other name, same size
        ]
        result = DuplicateCheckService().check_existing(candidates, str(destination))

        assert result == [True, False, False]

    def test_result_is_parallel_to_input(self, destination, make_file):
        make_file(destination / "b.jpg", 5)
        candidates = [("/card/a.jpg", 5), ("/card/b.jpg", 5), ("/card/c.jpg", 5), ("/card/b.jpg", 6)]

        assert DuplicateCheckService().check_existing(candidates, str(destination)) == [False, True, False, False]

    def test_missing_destination_flags_nothing(self, temp_dir):
        result = DuplicateCheckService().check_existing([("/card/a.jpg", 1)], str(temp_dir / "missing"))
        assert result == [False]

    def test_empty_candidates(self, destination):
        assert DuplicateCheckService().check_existing([], str(destination)) == []

    def test_only_top_level_is_checked(self, destination, make_file):
        make_file(destination / "2024" / "IMG_0001.jpg", 100)
        assert DuplicateCheckService().check_existing([("/card/IMG_0001.jpg", 100)], str(destination)) == [False]

    def test_directory_with_same_name_is_not_a_match(self, destination):
        (destination / "IMG_0001.jpg").mkdir()
        assert DuplicateCheckService().check_existing([("/card/IMG_0001.jpg", 0)], str(destination)) == [False]

    def test_content_is_not_compared(self, destination, make_file):
        make_file(destination / "clip.mp4", 64, fill=b"a")
        assert DuplicateCheckService().check_existing([("/card/clip.mp4", 64)], str(destination)) == [True]

    def test_candidate_objects(self, destination, make_file):
        make_file(destination / "a.jpg", 3)
        candidates = [DuplicateCandidate("/card/a.jpg", 3), DuplicateCandidate("/card/z.jpg", 3)]

        service = DuplicateCheckService()
        assert service.check_existing(candidates, str(destination)) == [True, False]


def test_file_matches(destination, make_file):
    make_file(destination / "photo.jpg", 500)
    assert file_matches(str(destination), "photo.jpg", 500) is True
    assert file_matches(str(destination), "photo.jpg", 501) is False
    assert file_matches(str(destination), "other.jpg", 500) is None


def test_file_matches_folder_with_same_name(destination):
    (destination / "DCIM").mkdir()
    assert file_matches(str(destination), "DCIM", 4096) is False
    assert DuplicateCheckService().check_existing([("/card/DCIM", 4096)], str(destination)) == [False]
