from util4tests import run_single_test, log, random_passwd
from dyson_local.mqtt import (
    DysonMQTopic, DysonMQChannel, DysonMQMessageType, DysonConnection,
)
from dyson_local.mqtt.mqnames import MQTTMethod


def test_dyson_mqtt_topic():
    log.debug("starting test of topic formatting")
    status = DysonMQTopic('438', 'NK6-EU-MHA0000A', DysonMQChannel.STATUS)
    assert status.path == '438/NK6-EU-MHA0000A/status/current', "Topic path should concatenate the parts"
    assert status.method == MQTTMethod.SUBSCRIBE, "status topics are expected to be used with the subscribe method"

    command = DysonMQTopic('527K', 'VS9-EU-KAA1234A', DysonMQChannel.COMMAND)
    assert command.path == '527K/VS9-EU-KAA1234A/command', "Topic path should concatenate the parts"
    assert command.method == MQTTMethod.PUBLISH, "command topics are expected to be used with the publish method"


def test_dyson_message_types():
    assert DysonMQMessageType.lookup('CURRENT-STATE') is DysonMQMessageType.CURRENT_STATE
    assert DysonMQMessageType.lookup('HELLO') is None
    assert DysonMQMessageType.lookup(None) is None
    carrying = {mt for mt in DysonMQMessageType if mt.carries_state}
    assert carrying == {
        DysonMQMessageType.CURRENT_STATE,
        DysonMQMessageType.STATE_CHANGE,
        DysonMQMessageType.ENVIRONMENTAL_CURRENT_SENSOR_DATA,
    }


def test_dyson_connection():
    log.debug("starting test of connection class")
    myhost, mypass = "192.168.1.20", random_passwd()
    conn = DysonConnection(myhost, 'NK6-EU-MHA0000A', mypass, '438')
    conn_params = conn.as_tuple()
    assert conn_params[0] == myhost
    assert conn_params[2] == mypass
    assert conn.port == 1883
    assert conn.timeout == 10.0
    assert conn.keepalive == 30
    assert mypass not in str(conn), "the credential should never show in full"
    assert mypass not in repr(conn), "the credential should never show in full"
    assert conn.secret == f"{mypass[:2]}..{mypass[-3:]}"


if __name__ == "__main__":
    run_single_test(__file__)
