"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import typer

from blekeeper.api import Client
from blekeeper.core.config import load_config
from blekeeper.core.errors import BlekeeperError
from blekeeper.core.model import ConnectionState, DeviceRecord, parse_identifier

app = typer.Typer(help="Discover, connect, and automatically reconnect Bluetooth LE peripherals")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Path | None = typer.Option(None, "--config", help="Path to config.yaml"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    ctx.obj = config


def _build_client(ctx: typer.Context) -> Client:
    return Client(config=load_config(ctx.obj))


def _wait_ready(client: Client, timeout_s: float) -> None:
    if not client.wait_until_ready(timeout_s):
        typer.echo(f"Error: Bluetooth adapter is {client.adapter_state}", err=True)
        raise typer.Exit(code=1)


def _wait_for(client: Client, predicate, timeout_s: float) -> bool:
    changed = threading.Event()
    unsubscribe = client.subscribe(changed.set)
    deadline = time.monotonic() + timeout_s
    try:
        while not predicate():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            changed.wait(remaining)
            changed.clear()
        return True
    finally:
        unsubscribe()


def _format_device(device: DeviceRecord) -> str:
    name = device.name or "<unnamed>"
    rssi = f"{device.rssi} dBm" if device.rssi is not None else "-"
    return f"{device.identifier} {name} [{device.state}] rssi={rssi}"


def _print_devices(client: Client) -> None:
    devices = client.devices()
    if not devices:
        typer.echo("No Bluetooth devices found")
        return
    for device in devices:
        typer.echo(_format_device(device))


@app.command("known")
def list_known(ctx: typer.Context) -> None:
    """List peripherals remembered for automatic reconnection."""
    try:
        client = _build_client(ctx)
        known = client.known_devices()
        if not known:
            typer.echo("No known peripherals")
            return
        for identifier in known:
            typer.echo(identifier)
    except BlekeeperError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(
    ctx: typer.Context,
    duration: float = typer.Option(10.0, "--duration", "-d", help="Seconds to scan"),
) -> None:
    """Scan for named peripherals and list them, most recently discovered first."""
    try:
        with _build_client(ctx) as client:
            _wait_ready(client, duration)
            client.start_scan()
            time.sleep(duration)
            client.stop_scan()
            _print_devices(client)
    except BlekeeperError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("connect")
def connect(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="MAC address or CoreBluetooth UUID"),
    duration: float = typer.Option(30.0, "--duration", "-d", help="Seconds to wait for the peripheral"),
) -> None:
    """Discover a peripheral, connect to it, and remember it for reconnection."""
    try:
        identifier = parse_identifier(address)
        with _build_client(ctx) as client:
            _wait_ready(client, duration)
            client.start_scan()
            try:
                found = _wait_for(client, lambda: client.device(identifier) is not None, duration)
            finally:
                client.stop_scan()
            if not found:
                typer.echo(f"Error: Peripheral {identifier} was not discovered", err=True)
                raise typer.Exit(code=1)

            client.connect(identifier)
            connected = _wait_for(
                client,
                lambda: client.device(identifier).state is ConnectionState.CONNECTED,
                duration,
            )
            typer.echo(_format_device(client.device(identifier)))
            if not connected:
                raise typer.Exit(code=1)
    except BlekeeperError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("reconnect")
def reconnect(
    ctx: typer.Context,
    duration: float = typer.Option(30.0, "--duration", "-d", help="Seconds to keep connections pending"),
) -> None:
    """Reconnect every known peripheral once the radio is powered on."""
    try:
        with _build_client(ctx) as client:
            if not client.known_devices():
                typer.echo("No known peripherals")
                return
            _wait_ready(client, duration)
            _wait_for(
                client,
                lambda: bool(client.devices())
                and all(d.state is ConnectionState.CONNECTED for d in client.devices()),
                duration,
            )
            _print_devices(client)
    except BlekeeperError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
