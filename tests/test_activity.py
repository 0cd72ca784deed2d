import asyncio

from internlive.activity import ActivityFeed, describe
from internlive.events import EventName


def make_feed(registry, live=True, **kwargs):
    return ActivityFeed(registry, is_live=lambda: live, **kwargs)


def test_company_activity_is_added_newest_first(registry):
    feed = make_feed(registry)
    registry.dispatch(EventName.COMPANY_ACTIVITY, {
        "type": "internship_viewed", "userName": "Ada", "internshipTitle": "Backend Intern",
    })
    registry.dispatch(EventName.COMPANY_ACTIVITY, {
        "type": "application_accepted", "userName": "Lin", "internshipTitle": "Data Intern",
    })

    assert [a.user_name for a in feed.activities] == ["Lin", "Ada"]
    assert describe(feed.activities[0]) == "Lin accepted for Data Intern"
    assert describe(feed.activities[1]) == "Ada viewed Backend Intern"


def test_company_filter(registry):
    feed = make_feed(registry, company_id="c1")
    registry.dispatch(EventName.COMPANY_ACTIVITY, {"type": "internship_viewed", "companyId": "c2"})
    registry.dispatch(EventName.COMPANY_ACTIVITY, {"type": "internship_viewed", "companyId": "c1"})
    assert len(feed.activities) == 1
    assert feed.activities[0].company_id == "c1"


def test_new_application_event(registry):
    feed = make_feed(registry)
    registry.dispatch(EventName.NEW_APPLICATION, {"applicantName": "Sam", "internshipTitle": "QA Intern"})
    assert describe(feed.activities[0]) == "Sam applied to QA Intern"


def test_unknown_type_and_missing_names(registry):
    feed = make_feed(registry)
    activity = feed.add(type="something_else", user_name="", internship_title="")
    assert describe(activity) == "Someone interacted with an internship"


def test_feed_is_capped(registry):
    feed = make_feed(registry, max_items=3)
    for i in range(5):
        feed.add(type="internship_viewed", user_name=f"u{i}", internship_title="t")
    assert [a.user_name for a in feed.activities] == ["u4", "u3", "u2"]


def test_malformed_payload_is_dropped(registry, caplog):
    feed = make_feed(registry)
    registry.dispatch(EventName.COMPANY_ACTIVITY, "not a dict")
    assert feed.activities == []
    assert "malformed" in caplog.text


def test_is_live_mirrors_connection(registry):
    assert make_feed(registry, live=True).is_live
    assert not make_feed(registry, live=False).is_live


async def test_new_flag_clears(registry):
    feed = make_feed(registry, new_flag_seconds=0.01)
    updates = []
    feed.add_listener(lambda f: updates.append(f.activities[0].is_new))

    feed.add(type="internship_viewed", user_name="Ada", internship_title="t")
    assert feed.activities[0].is_new
    await asyncio.sleep(0.05)

    assert not feed.activities[0].is_new
    assert updates == [True, False]


def test_close_unsubscribes(registry):
    feed = make_feed(registry)
    feed.close()
    registry.dispatch(EventName.NEW_APPLICATION, {"applicantName": "Sam"})
    assert feed.activities == []
    assert registry.listener_count(EventName.NEW_APPLICATION) == 0
