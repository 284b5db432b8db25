"""IoT controller fleet and telemetry broker (ZeroMQ-based).

Components:
- a Broker that accepts many controller connections on a ROUTER socket and
  fans requests out to a fixed pool of workers
- Workers that decode and log sensor telemetry and acknowledge with `R`
- simulated Controllers, each reporting 8 sensor zones periodically

Run everything with `python -m iot_comm.app run`.
"""
