import base64
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import rpc_requests


def test_tags_are_unique():
    a = rpc_requests.session_get()
    b = rpc_requests.session_get()
    assert a["tag"] != b["tag"]
    assert "arguments" not in a


def test_session_set_copies_arguments():
    args = {"speed-limit-down": 10}
    req = rpc_requests.session_set(args)
    args["speed-limit-down"] = 20
    assert req["arguments"] == {"speed-limit-down": 10}


def test_torrent_get_defaults_to_list_fields():
    req = rpc_requests.torrent_get()
    assert req["method"] == "torrent-get"
    for field in ("id", "name", "status", "percentDone", "rateDownload", "rateUpload"):
        assert field in req["arguments"]["fields"]
    assert "ids" not in req["arguments"]


def test_torrent_get_with_ids():
    req = rpc_requests.torrent_get(fields=["id"], ids=5)
    assert req["arguments"] == {"fields": ["id"], "ids": [5]}


def test_remove_flag():
    assert rpc_requests.torrent_remove([1, 2])["arguments"] == {"ids": [1, 2], "delete-local-data": False}
    assert rpc_requests.torrent_remove([1], delete_local_data=True)["arguments"]["delete-local-data"] is True


def test_add_file_inlines_metainfo(tmp_path):
    path = tmp_path / "x.torrent"
    path.write_bytes(b"d8:announce0:e")
    req = rpc_requests.torrent_add_file(str(path), paused=True, download_dir="/downloads")
    args = req["arguments"]
    assert base64.b64decode(args["metainfo"]) == b"d8:announce0:e"
    assert args["paused"] is True
    assert args["download-dir"] == "/downloads"


def test_add_file_missing_raises(tmp_path):
    with pytest.raises(OSError):
        rpc_requests.torrent_add_file(str(tmp_path / "missing.torrent"))


@pytest.mark.parametrize("source, local", [
    ("magnet:?xt=urn:btih:abc", False),
    ("https://example.com/a.torrent", False),
    ("HTTP://example.com/a.torrent", False),
    ("/tmp/a.torrent", True),
    ("a.torrent", True),
])
def test_is_local_source(source, local):
    assert rpc_requests.is_local_source(source) is local
