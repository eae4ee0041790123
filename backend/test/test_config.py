"""ICE/미디어 설정 테스트."""

from aiortc import RTCConfiguration

from modules.webrtc import ICEServerConfig, MediaConfig, build_rtc_configuration, get_ice_servers


def test_stun_only_without_turn_credentials():
    config = ICEServerConfig(
        TURN_SERVER_URL="turn:turn.example.com:3478",
        TURN_USERNAME=None,
        TURN_CREDENTIAL=None,
        STUN_SERVER_URL=None,
    )

    assert config.has_turn_server is False
    assert get_ice_servers(config) == [{"urls": "stun:stun.l.google.com:19302"}]


def test_custom_stun_comes_first_and_turn_is_added():
    config = ICEServerConfig(
        TURN_SERVER_URL="turn:turn.example.com:3478",
        TURN_USERNAME="alice",
        TURN_CREDENTIAL="s3cret",
        STUN_SERVER_URL="stun:stun.example.com:3478",
    )

    assert get_ice_servers(config) == [
        {"urls": "stun:stun.example.com:3478"},
        {"urls": "stun:stun.l.google.com:19302"},
        {"urls": "turn:turn.example.com:3478", "username": "alice", "credential": "s3cret"},
    ]


def test_rtc_configuration_carries_credentials():
    config = ICEServerConfig(
        TURN_SERVER_URL="turn:turn.example.com:3478",
        TURN_USERNAME="alice",
        TURN_CREDENTIAL="s3cret",
        STUN_SERVER_URL=None,
    )

    rtc_config = build_rtc_configuration(config)

    assert isinstance(rtc_config, RTCConfiguration)
    turn = rtc_config.iceServers[-1]
    assert turn.urls == ["turn:turn.example.com:3478"]
    assert turn.username == "alice"
    assert turn.credential == "s3cret"


def test_media_video_size():
    config = MediaConfig(VIDEO_WIDTH=640, VIDEO_HEIGHT=480)
    assert config.video_size == "640x480"
