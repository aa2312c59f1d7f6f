"""Tests for login page detection."""
from carrier_scraper.auth.login_detector import has_portal_data, is_login_page
from carrier_scraper.browser.endpoints import GTL

from tests.fakes import LOGIN_PAGE, results_page


def test_results_page_is_not_login():
    html = results_page(["1"])
    assert has_portal_data(html, GTL) is True
    assert is_login_page(html, GTL.landing_url, GTL) is False


def test_login_form_detected():
    assert has_portal_data(LOGIN_PAGE, GTL) is False
    assert is_login_page(LOGIN_PAGE, GTL.landing_url, GTL) is True


def test_login_url_detected():
    assert is_login_page("<html></html>", "https://eapp.gtlic.com/", GTL) is True
    assert is_login_page("<html></html>", "https://gtlink.gtlic.com/Account/Login?x=1", GTL) is True


def test_weak_hints():
    html = "<html><body><p>Please sign in. Forgot your password?</p></body></html>"
    assert is_login_page(html, GTL.landing_url, GTL) is True


def test_single_hint_is_not_enough():
    html = "<html><body><p>Change your password in settings</p></body></html>"
    assert is_login_page(html, GTL.landing_url, GTL) is False


def test_empty_html():
    assert is_login_page("", GTL.landing_url, GTL) is False
    assert has_portal_data(None, GTL) is False
