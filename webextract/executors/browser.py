"""Executors that drive pages opened under the run's shared browser."""

from typing import Any, Callable

from playwright.sync_api import Error as PlaywrightError

from ..core.environment import ExecutionEnvironment
from ..core.exceptions import ResourceError

VISIBILITY_STATES = ("visible", "hidden")


def _required(env: ExecutionEnvironment, name: str) -> Any:
    value = env.get_input(name)
    if not value:
        env.log.error(f"input -> {name} is not defined")
    return value


def _on_page(env: ExecutionEnvironment, operation: Callable[..., Any], page: Any, *args) -> bool:
    """Run ``operation(page, *args)`` on the browser thread, logging browser failures."""
    try:
        env.get_automation().run(lambda browser: operation(page, *args))
        return True
    except (PlaywrightError, ResourceError) as e:
        env.log.error(str(e))
        return False


def _open_page(browser, url: str):
    page = browser.new_page()
    page.goto(url)
    return page


def launch_browser(env: ExecutionEnvironment) -> bool:
    url = _required(env, "Website Url")
    if not url:
        return False
    try:
        page = env.get_automation().run(_open_page, url)
    except (PlaywrightError, ResourceError) as e:
        env.log.error(str(e))
        return False
    env.log.info(f"Opened page at: {url}")
    env.set_output("Web page", page)
    return True


def page_to_html(env: ExecutionEnvironment) -> bool:
    page = _required(env, "Web page")
    if not page:
        return False
    try:
        html = env.get_automation().run(lambda browser: page.content())
    except (PlaywrightError, ResourceError) as e:
        env.log.error(str(e))
        return False
    env.set_output("Html", html)
    env.set_output("Web page", page)
    return True


def fill_input(env: ExecutionEnvironment) -> bool:
    page = _required(env, "Web page")
    selector = _required(env, "Selector")
    value = _required(env, "Value")
    if not (page and selector and value):
        return False
    if not _on_page(env, lambda p: p.fill(selector, value), page):
        return False
    env.set_output("Web page", page)
    return True


def click_element(env: ExecutionEnvironment) -> bool:
    page = _required(env, "Web page")
    selector = _required(env, "Selector")
    if not (page and selector):
        return False
    if not _on_page(env, lambda p: p.click(selector), page):
        return False
    env.set_output("Web page", page)
    return True


def wait_for_element(env: ExecutionEnvironment) -> bool:
    page = _required(env, "Web page")
    selector = _required(env, "Selector")
    visibility = _required(env, "Visibility")
    if not (page and selector and visibility):
        return False
    if visibility not in VISIBILITY_STATES:
        env.log.error(f"invalid visibility: {visibility}")
        return False
    if not _on_page(env, lambda p: p.wait_for_selector(selector, state=visibility), page):
        return False
    env.log.info(f"Element {selector} became: {visibility}")
    env.set_output("Web page", page)
    return True


def navigate_url(env: ExecutionEnvironment) -> bool:
    page = _required(env, "Web page")
    url = _required(env, "URL")
    if not (page and url):
        return False
    if not _on_page(env, lambda p: p.goto(url), page):
        return False
    env.log.info(f"Visited {url}")
    env.set_output("Web page", page)
    return True


def scroll_to_element(env: ExecutionEnvironment) -> bool:
    page = _required(env, "Web page")
    selector = _required(env, "Selector")
    if not (page and selector):
        return False
    if not _on_page(env, lambda p: p.locator(selector).first.scroll_into_view_if_needed(), page):
        return False
    env.set_output("Web page", page)
    return True
