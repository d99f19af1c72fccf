"""Local scanning of artifact layers and report building from a scan driver."""