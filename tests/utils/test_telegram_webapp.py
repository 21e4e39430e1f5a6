import pytest

from vpn_miniapp.utils.telegram_webapp import extract_init_data_from_url


@pytest.mark.parametrize(
    ("url", "expected"),
    (
        ("https://app.test/?tgWebAppData=a%3D1%26hash%3Dx", "a=1&hash=x"),
        ("https://app.test/#tgWebAppData=b%3D2&tgWebAppVersion=7.2", "b=2"),
        ("https://app.test/?tgWebAppData=query#tgWebAppData=fragment", "query"),
        ("https://app.test/?foo=bar#tgWebAppData=fragment", "fragment"),
        ("https://app.test/?tgWebAppData=", ""),
        ("https://app.test/", ""),
        ("", ""),
        (None, ""),
    ),
)
def test_extract_init_data_from_url(url, expected) -> None:
    assert extract_init_data_from_url(url) == expected
