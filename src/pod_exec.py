#!/usr/bin/env python3
# src/pod_exec.py
"""Run a command inside a container of a pod and capture its output."""

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream
from websocket import WebSocketException

from operator_errors import CommandExecutionError

logger = logging.getLogger("cassandra-operator.exec")

# Failures of the exec transport, from the API call down to the socket
EXEC_ERRORS = (ApiException, WebSocketException, OSError)


class CommandExecutor(ABC):
    @abstractmethod
    def execute(
        self, pod_name: str, container_name: str, namespace: str, argv: List[str]
    ) -> Tuple[str, str]:
        """Run argv in the container and return (stdout, stderr).

        Blocks until the remote command finishes. Raises
        CommandExecutionError if the command could not be run or exited
        with a non-zero status.
        """


class KubernetesCommandExecutor(CommandExecutor):
    """Exec over the pods/exec subresource.

    The stream helper swaps the request function of the client it is given,
    so this executor should own a CoreV1Api that nothing else shares.
    """

    def __init__(self, core_api: client.CoreV1Api):
        self.core_api = core_api

    def _check_container_ready(self, pod_name: str, container_name: str, namespace: str):
        try:
            pod = self.core_api.read_namespaced_pod(name=pod_name, namespace=namespace)
        except ApiException as e:
            raise CommandExecutionError(
                f"could not get pod info for {namespace}/{pod_name}", str(e)
            ) from e

        names = [c.name for c in pod.spec.containers]
        if container_name not in names:
            raise CommandExecutionError(
                f"pod {namespace}/{pod_name} has no container {container_name}"
            )

        statuses = (pod.status.container_statuses or []) if pod.status else []
        for container_status in statuses:
            if container_status.name == container_name:
                if not container_status.ready:
                    raise CommandExecutionError(
                        f"container {container_name} in {namespace}/{pod_name} is not ready"
                    )
                return
        raise CommandExecutionError(
            f"container {container_name} in {namespace}/{pod_name} has no status yet"
        )

    def execute(
        self, pod_name: str, container_name: str, namespace: str, argv: List[str]
    ) -> Tuple[str, str]:
        self._check_container_ready(pod_name, container_name, namespace)

        command = " ".join(argv)
        logger.info(f"Executing '{command}' in {namespace}/{pod_name} ({container_name})")
        try:
            resp = stream(
                self.core_api.connect_get_namespaced_pod_exec,
                pod_name,
                namespace,
                container=container_name,
                command=argv,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
        except EXEC_ERRORS as e:
            raise CommandExecutionError(
                f"could not execute '{command}' in {namespace}/{pod_name}", str(e)
            ) from e

        try:
            # No timeout: a hung command blocks the reconcile of this cluster
            resp.run_forever()
            stdout = resp.read_stdout()
            stderr = resp.read_stderr()
            returncode = resp.returncode
        except EXEC_ERRORS as e:
            raise CommandExecutionError(
                f"lost the exec stream of '{command}' in {namespace}/{pod_name}", str(e)
            ) from e
        finally:
            resp.close()

        if returncode:
            raise CommandExecutionError(
                f"'{command}' in {namespace}/{pod_name} exited with status {returncode}",
                stderr.strip() or None,
            )

        logger.debug(f"'{command}' in {namespace}/{pod_name} finished: {stdout.strip()}")
        return stdout, stderr
