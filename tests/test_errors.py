from errors import LastItemProtected, RoomFull


def test_default_message_when_none_given():
    assert RoomFull().message == "Room is full"
    assert RoomFull(None).message == "Room is full"
    assert str(RoomFull()) == "Room is full"


def test_explicit_message_wins():
    error = LastItemProtected("Cannot delete the last note")
    assert error.message == "Cannot delete the last note"
    assert str(error) == "Cannot delete the last note"
