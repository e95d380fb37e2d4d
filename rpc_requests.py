"""Builders for the JSON-RPC payloads sent to the daemon."""

import base64
import itertools

TORRENT_GET_FIELDS = [
    "id",
    "name",
    "status",
    "error",
    "errorString",
    "percentDone",
    "rateDownload",
    "rateUpload",
    "totalSize",
    "sizeWhenDone",
    "leftUntilDone",
    "eta",
    "uploadRatio",
    "peersConnected",
    "peersSendingToUs",
    "peersGettingFromUs",
    "downloadDir",
    "hashString",
    "addedDate",
]

_tags = itertools.count(1)


def _request(method, arguments=None):
    req = {"method": method, "tag": next(_tags)}
    if arguments is not None:
        req["arguments"] = arguments
    return req


def _id_list(ids):
    if ids is None:
        return []
    if isinstance(ids, int):
        return [ids]
    return [int(i) for i in ids]


def session_get():
    return _request("session-get")


def session_set(arguments):
    return _request("session-set", dict(arguments))


def torrent_get(fields=None, ids=None):
    args = {"fields": list(fields or TORRENT_GET_FIELDS)}
    if ids is not None:
        args["ids"] = _id_list(ids)
    return _request("torrent-get", args)


def torrent_start(ids):
    return _request("torrent-start", {"ids": _id_list(ids)})


def torrent_stop(ids):
    return _request("torrent-stop", {"ids": _id_list(ids)})


def torrent_verify(ids):
    return _request("torrent-verify", {"ids": _id_list(ids)})


def torrent_remove(ids, delete_local_data=False):
    return _request("torrent-remove", {"ids": _id_list(ids), "delete-local-data": bool(delete_local_data)})


def _add_arguments(paused, download_dir):
    args = {"paused": bool(paused)}
    if download_dir:
        args["download-dir"] = download_dir
    return args


def torrent_add_file(path, paused=False, download_dir=None):
    """Build a ``torrent-add`` carrying a local .torrent inline as base64.

    Raises ``OSError`` when the file cannot be read.
    """
    with open(path, "rb") as f:
        data = f.read()
    args = _add_arguments(paused, download_dir)
    args["metainfo"] = base64.b64encode(data).decode("ascii")
    return _request("torrent-add", args)


def torrent_add_url(url, paused=False, download_dir=None):
    # magnet links and http URLs are fetched by the daemon itself
    args = _add_arguments(paused, download_dir)
    args["filename"] = url
    return _request("torrent-add", args)


_URL_PREFIXES = ("magnet:", "http://", "https://", "ftp://")


def is_local_source(source):
    """Anything that is not a magnet link or a URL is treated as a .torrent path."""
    return not source.lower().startswith(_URL_PREFIXES)
