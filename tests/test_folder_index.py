"""Tests for virtual folder index allocation and resolution."""

import pytest

from codec.folder_index import FolderIndexAllocator, FolderIndexResolver, normalize_path
from common.constants import CUSTOM_FOLDER_ALPHABET
from common.exceptions import CapacityError, FormatError


def test_root_path_has_zero_index():
    allocator = FolderIndexAllocator()

    assert allocator.resolve('') == '0'
    assert allocator.resolve(None) == '0'
    assert allocator.resolve('/') == '0'
    assert allocator.custom_folders == []


def test_preset_folders_use_fixed_indices():
    allocator = FolderIndexAllocator()

    assert allocator.resolve('Documents') == '2'
    assert allocator.resolve('Images') == '3'
    assert allocator.resolve('Misc') == '9'
    assert allocator.custom_folders == []


def test_first_custom_folder_gets_empty_index():
    allocator = FolderIndexAllocator()

    assert allocator.resolve('FolderA') == ''
    assert allocator.resolve('FolderB') == 'A'
    assert allocator.resolve('FolderC') == 'B'
    assert allocator.custom_folders == ['FolderA', 'FolderB', 'FolderC']


def test_same_path_resolves_to_same_index():
    allocator = FolderIndexAllocator()

    first = allocator.resolve('Projects')
    allocator.resolve('Other')
    again = allocator.resolve('/Projects/')

    assert first == again == ''
    assert allocator.custom_folders == ['Projects', 'Other']
    assert allocator.lookup('A') == 'Other'
    assert allocator.lookup('Z') is None


def test_preset_subfolder_references_preset_index():
    allocator = FolderIndexAllocator()

    assert allocator.resolve('Images/2023') == ''
    assert allocator.custom_folders == ['3/2023']


def test_child_of_first_custom_folder_references_one():
    allocator = FolderIndexAllocator()

    assert allocator.resolve('Projects/web/assets') == 'B'
    assert allocator.custom_folders == ['Projects', '1/web', 'A/assets']
    assert allocator.resolve('Projects/web') == 'A'


def test_capacity_error_when_alphabet_exhausted():
    allocator = FolderIndexAllocator()
    for number in range(len(CUSTOM_FOLDER_ALPHABET) + 1):
        allocator.resolve(f'folder{number}')

    assert allocator.capacity == 50
    assert allocator.resolve('folder49') == 'z'
    with pytest.raises(CapacityError):
        allocator.resolve('one-too-many')


def test_reserved_characters_rejected_in_paths():
    with pytest.raises(FormatError):
        normalize_path('bad,name')
    with pytest.raises(FormatError):
        normalize_path('Docs/bad|name')


def test_preset_table_must_not_collide_with_alphabet():
    with pytest.raises(ValueError):
        FolderIndexAllocator(presets={'Docs': 'A'})


@pytest.mark.parametrize('index', ['0', '1'])
def test_preset_table_must_not_use_reserved_indices(index):
    with pytest.raises(ValueError):
        FolderIndexAllocator(presets={'Docs': index})


def test_alternate_preset_table(alternate_presets):
    allocator = FolderIndexAllocator(presets=alternate_presets)

    assert allocator.resolve('Photos') == '3'
    assert allocator.resolve('Images') == ''


def test_resolver_rebuilds_nested_paths():
    resolver = FolderIndexResolver(['Projects', '1/web', '3/2023', 'A/css'])

    assert resolver.resolve('0') == ''
    assert resolver.resolve('2') == 'Documents'
    assert resolver.resolve('') == 'Projects'
    assert resolver.resolve('A') == 'Projects/web'
    assert resolver.resolve('B') == 'Images/2023'
    assert resolver.resolve('C') == 'Projects/web/css'


def test_resolver_without_custom_folders_maps_empty_index_to_root():
    resolver = FolderIndexResolver([])

    assert resolver.resolve('') == ''


def test_resolver_rejects_unknown_index():
    resolver = FolderIndexResolver(['Projects'])

    with pytest.raises(FormatError):
        resolver.resolve('A')


@pytest.mark.parametrize('entries', [['Z/child'], ['1/child'], ['Projects', '0/child'], ['Projects', '/child']])
def test_resolver_rejects_bad_parent_reference(entries):
    with pytest.raises(FormatError):
        FolderIndexResolver(entries)
