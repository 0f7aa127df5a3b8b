"""Tests for the compact batch metadata codec."""

import pytest

from codec.batch_metadata import BatchMetadataCodec, decode, encode
from common.exceptions import CapacityError, FormatError
from common.types import FileAttributes, FileFlags, FileRecord


def _record(cid, name, ext='', path='', thumb=None, attributes=None):
    return FileRecord(
        cid=cid,
        name=name,
        ext=ext,
        path=path,
        thumb=thumb,
        attributes=attributes or FileAttributes(),
    )


@pytest.fixture
def mixed_batch():
    return [
        _record('QmC', 'notes', 'md', 'Projects/web', attributes=FileAttributes(flags=FileFlags.HIDDEN)),
        _record('QmA', 'photo', 'png', 'Images/2023', thumb='QmThumb',
                attributes=FileAttributes(flags=FileFlags.of(adult=True, encrypted=True), license='1', labels='42')),
        _record('QmB', 'readme', 'txt'),
        _record('QmD', 'song', 'mp3', 'Music', attributes=FileAttributes(license='7')),
        _record('QmE', 'draft', 'doc', 'Projects'),
    ]


def test_documented_two_file_example():
    files = [
        _record('Qm2', 'img', 'jpg', 'Images', thumb='QmT'),
        _record('Qm1', 'doc', 'pdf', 'Documents'),
    ]

    assert encode(files) == '1,doc,pdf.2,,,img,jpg.3,QmT,'


def test_default_file_yields_minimal_record():
    assert encode([_record('Qm1', 'a', 'txt')]) == '1,a,txt.0,,'


def test_attributes_render_all_three_subfields():
    files = [
        _record('Qm1', 'a', 'txt', attributes=FileAttributes(license='2')),
        _record('Qm2', 'b', 'txt', attributes=FileAttributes(flags=FileFlags(FileFlags.ENCRYPTED))),
        _record('Qm3', 'c', 'txt', attributes=FileAttributes(labels='05')),
    ]

    assert encode(files) == '1,a,txt.0,,-2-,b,txt.0,,1--,c,txt.0,,--05'


def test_header_lists_custom_folders_and_recipients():
    files = [
        _record('Qm1', 'a', 'txt', 'Projects'),
        _record('Qm2', 'b', 'txt', 'Images/2023'),
    ]

    encoded = encode(files, encrypt=['alice', 'bob'])

    assert encoded == '1#alice:bob|Projects|3/2023,a,txt,,,b,txt.A,,'


def test_round_trip_preserves_fields(mixed_batch):
    decoded = decode(encode(mixed_batch))
    by_cid = dict(decoded.with_cids(record.cid for record in mixed_batch))

    for record in mixed_batch:
        file = by_cid[record.cid]
        assert file.name == record.name
        assert file.ext == record.ext
        assert file.path == record.path
        assert file.thumb == record.thumb
        assert file.attributes == record.attributes


def test_round_trip_independent_of_input_order(mixed_batch):
    assert encode(mixed_batch) == encode(list(reversed(mixed_batch)))


def test_encoding_is_deterministic(mixed_batch):
    codec = BatchMetadataCodec()

    assert codec.encode(mixed_batch) == codec.encode(mixed_batch)


def test_duplicate_cids_keep_input_order():
    files = [_record('QmX', 'first', 'txt'), _record('QmX', 'second', 'txt')]

    decoded = decode(encode(files))

    assert [file.name for file in decoded.files] == ['first', 'second']


def test_with_cids_keeps_every_record_for_repeated_cids():
    files = [_record('Qm1', 'first', 'txt'), _record('Qm1', 'second', 'txt', 'Trash')]

    pairs = decode(encode(files)).with_cids(['Qm1', 'Qm1'])

    assert [(cid, file.name, file.path) for cid, file in pairs] == [
        ('Qm1', 'first', ''),
        ('Qm1', 'second', 'Trash'),
    ]


def test_decode_reports_header_sections():
    decoded = decode('1#alice|Projects,a,txt,,')

    assert decoded.version == '1'
    assert decoded.encrypt == ['alice']
    assert decoded.folders[''] == 'Projects'
    assert decoded.files[0].full_path == 'Projects/a.txt'


def test_decode_root_index():
    decoded = decode('1,a,txt.0,,')

    assert decoded.files[0].path == ''


def test_decode_without_index_and_without_custom_folders_is_root():
    assert decode('1,a,txt,,').files[0].path == ''


def test_decode_first_custom_folder_without_index():
    decoded = decode('1|FolderA|FolderB,a,txt,,,b,txt.A,,')

    assert [file.path for file in decoded.files] == ['FolderA', 'FolderB']


def test_encode_two_custom_folders():
    files = [_record('Qm1', 'a', 'txt', 'FolderA'), _record('Qm2', 'b', 'txt', 'FolderB')]

    assert encode(files) == '1|FolderA|FolderB,a,txt,,,b,txt.A,,'


def test_nested_folder_under_first_custom_folder_round_trips():
    files = [_record('Qm1', 'a', 'txt', 'Projects'), _record('Qm2', 'b', 'txt', 'Projects/web')]

    encoded = encode(files)

    assert encoded == '1|Projects|1/web,a,txt,,,b,txt.A,,'
    assert [file.path for file in decode(encoded).files] == ['Projects', 'Projects/web']


def test_decode_header_only_means_no_files():
    assert decode('1,').files == []


@pytest.mark.parametrize('text', [
    'no-separator',
    '1,a,txt,',
    '1,a,txt.Z,,',
    '1,a,txt,,1-2',
    '1,a,txt,,!--',
    '1,a,txt,,-9-',
    ',a,txt,,',
    '1||Projects,a,txt,,',
    '1|Projects|,a,txt.A,,',
])
def test_decode_rejects_malformed_strings(text):
    with pytest.raises(FormatError):
        decode(text)


def test_decode_rejects_cid_count_mismatch():
    with pytest.raises(FormatError):
        decode('1,a,txt,,', cids=['Qm1', 'Qm2'])


@pytest.mark.parametrize('record', [
    _record('Qm1', 'a,b', 'txt'),
    _record('Qm1', 'a', 'tar.gz'),
    _record('Qm1', 'a', 'txt', thumb='x,y'),
])
def test_encode_rejects_ambiguous_values(record):
    with pytest.raises(FormatError):
        encode([record])


def test_encode_rejects_delimiters_in_recipients():
    with pytest.raises(FormatError):
        encode([_record('Qm1', 'a', 'txt')], encrypt=['al:ice'])


def test_capacity_error_for_too_many_folders():
    files = [_record(f'Qm{number:03d}', 'f', 'txt', f'folder{number}') for number in range(51)]

    with pytest.raises(CapacityError):
        encode(files)
    assert encode(files[:50]).count('|') == 50


def test_fresh_allocator_per_encode_call():
    codec = BatchMetadataCodec()
    codec.encode([_record('Qm1', 'a', 'txt', 'First')])

    assert codec.encode([_record('Qm1', 'a', 'txt', 'Second')]) == '1|Second,a,txt,,'


def test_alternate_preset_table(alternate_presets):
    codec = BatchMetadataCodec(presets=alternate_presets)
    encoded = codec.encode([_record('Qm1', 'a', 'jpg', 'Photos')])

    assert encoded == '1,a,jpg.3,,'
    assert codec.decode(encoded).files[0].path == 'Photos'
