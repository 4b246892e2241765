from tracking_api.schemas import Beacon, Location

USER_ID = "5f1aaba0b8ee114a141cd0db"
UNTRACKED_USER_ID = "5f1aaba0b8ee114a141cd0dc"
UNKNOWN_USER_ID = "5f1aaba0b8ee114a141cd0da"

PROJECT_ID = "demo"


def demo_beacons():
    return [
        Beacon(id="b-1", project_id=PROJECT_ID, name="Beacon1", id_beacon="AA:01",
               is_active=True, location=Location(x=0.0, y=0.0, z=0.0)),
        Beacon(id="b-2", project_id=PROJECT_ID, name="Beacon2", id_beacon="AA:02",
               is_active=True, location=Location(x=10.0, y=0.0, z=0.0)),
        Beacon(id="b-3", project_id=PROJECT_ID, name="Beacon3",
               location=Location(x=0.0, y=10.0, z=0.0)),
    ]
