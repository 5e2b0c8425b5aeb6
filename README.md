# horust

Building blocks for a small supervisor that runs services inside containers.

The package provides:

- **Service definitions** (`horust.service`): TOML service files with
  environment-variable expansion, restart and failure policies, termination
  signals, resource limits and health-check settings. `validate` checks a set
  of services for empty commands and missing dependencies and raises
  `horust.errors.ValidationErrors` listing every problem.
- **Process environment and users** (`horust.environment`): `Environment`
  builds the `K=V` list for a service's process; `User` resolves a uid or a
  user name through the system user database.
- **Supervisor configuration** (`horust.config`): `HorustConfig.load_and_merge`
  combines command-line options with a TOML config file.
- **Events** (`horust.events`): `ServiceStatus` and the event classes the
  components exchange (`StatusChanged`, `ServiceExited`, `HealthCheck`, ...).
- **An event bus** (`horust.bus`): every event sent by one `BusConnector`
  reaches every connector joined to the same `Bus`, the sender included.
- **Health checks** (`horust.checks`, `horust.healthcheck`): file, HTTP (HEAD
  request, one second timeout) and command checks; `check_health` reports
  whether all of them pass, and `healthcheck.run` / `healthcheck.spawn` start
  and stop per-service check workers following bus events.
- **A command protocol over a Unix socket** (`horust.messages`,
  `horust.connection`, `horust.server`, `horust.client`,
  `horust.commands_handler`): ask a running server for a service's status or
  process info, or ask it to start or stop a service.

## Service files

```toml
command = "/bin/bash -c 'echo hello world'"
start-delay = "2s"
start-after = ["database"]
stdout = "STDOUT"
stderr = "/var/log/hello/stderr.log"

[restart]
strategy = "on-failure"
attempts = 3

[healthiness]
file-path = "/var/myservice/up"

[termination]
signal = "TERM"
wait = "10s"
```

```python
from horust.service import Service, validate

web = Service.from_file("/etc/horust/services/web.toml")
db = Service.from_command("database")
services = validate([db, web])  # raises ValidationErrors on problems
```

`$VAR`, `${VAR}` and `${VAR:-default}` in a service file are expanded before
parsing; an unset variable without a default is an error. Unknown keys are
rejected.

## Talking to a running server

```python
from pathlib import Path
from horust.client import ClientHandler
from horust.connection import get_path

socket_path = get_path(Path("/var/run/horust"), 1)  # .../horust-1.sock

name, status = ClientHandler(socket_path).send_status_request("web")
print(name, status.as_str_name())

name, info = ClientHandler(socket_path).send_info_request("web")

name, status = ClientHandler(socket_path).send_change_request("web", "STOP")
```

Each `ClientHandler` carries a single request. The server answers with an
error message when a request fails; the client raises `CommandError` for it.

To serve requests, subclass `horust.server.CommandsHandler` and implement
`get_service_status`, `get_service_info` and `update_service_status`, or use
`horust.commands_handler.spawn(bus, uds_path, service_names)`, which tracks
statuses and pids from the bus and reports cpu, memory and disk figures via
psutil.

## Event bus

```python
import threading
from horust.bus import Bus
from horust.events import ServiceStatus, StatusChanged

bus = Bus()
a = bus.join_bus()
b = bus.join_bus()
threading.Thread(target=bus.run, daemon=True).start()

a.send_event(StatusChanged("web", ServiceStatus.RUNNING))
print(b.get_n_events_blocking(1))
```

The bus stops dispatching once every connector has been closed
(`BusConnector.close()` or leaving a `with` block).

## What this package does not do

There is no supervisor loop here: nothing spawns, restarts or signals service
processes, applies resource limits, or writes and rotates their log files.
There is also no command-line program; the pieces above are a library.

## Running the tests

Install the `test` extra and run pytest from the project root.