from __future__ import annotations

import base64

import pytest

from common.pairing import DATA_URL_PREFIX, render_pairing_artifact


def test_render_produces_png_data_url():
    url = render_pairing_artifact("2@AbCdEf==,KeyOne==,KeyTwo==,Adv==")

    assert url.startswith(DATA_URL_PREFIX)
    png = base64.b64decode(url[len(DATA_URL_PREFIX):])
    assert png.startswith(b"\x89PNG\r\n\x1a\n")


def test_render_rejects_empty_payload():
    with pytest.raises(ValueError):
        render_pairing_artifact("")
