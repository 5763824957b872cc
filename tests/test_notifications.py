import notifications


def test_notification_lifecycle(db):
    first = notifications.create_notification("u1", "Booking created", "Your booking has been created.", type="booking")
    notifications.create_notification("u1", "Ride completed", "Your ride has been completed.")
    notifications.create_notification("u2", "Other", "Not yours")

    listed = notifications.list_notifications("u1")
    assert [n["title"] for n in listed] == ["Ride completed", "Booking created"]
    assert notifications.unread_count("u1") == 2

    assert notifications.mark_read("u1", first)
    assert not notifications.mark_read("u2", first)
    assert not notifications.mark_read("u1", "bogus")
    assert notifications.unread_count("u1") == 1
    assert notifications.mark_all_read("u1") == 1
    assert notifications.unread_count("u2") == 1


def test_notify_skips_missing_user(db):
    assert notifications.notify(None, "Title", "Body") is None


def test_push_payload_carries_title_and_body():
    payload = notifications.push_payload({"title": "Ride completed", "message": "Thanks!", "user_id": "u1"})
    assert payload == {"title": "Ride completed", "body": "Thanks!"}
