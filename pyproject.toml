[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zguide"
version = "0.1.0"
description = "Reliable request-reply patterns over ZeroMQ: Majordomo, Titanic, Freelance, the Pirate family and key-value messages"
requires-python = ">=3.10"
keywords = [
    "zeromq",
    "zmq",
    "majordomo",
    "messaging",
    "broker",
    "request-reply",
    "load-balancing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: System :: Networking",
]
dependencies = [
    "pyzmq",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
zguide-mdbroker = "zguide.mdbroker:main"
zguide-mdclient = "zguide.mdexamples:client_main"
zguide-mdclient2 = "zguide.mdexamples:async_client_main"
zguide-mdworker = "zguide.mdexamples:worker_main"
zguide-mmiecho = "zguide.mdexamples:mmiecho_main"
zguide-titanic = "zguide.titanic:main"
zguide-ticlient = "zguide.ticlient:main"
zguide-flclient1 = "zguide.flclient:model1_main"
zguide-flclient2 = "zguide.flclient:model2_main"
zguide-flclient3 = "zguide.flclient:model3_main"
zguide-flserver1 = "zguide.flserver:model1_main"
zguide-flserver2 = "zguide.flserver:model2_main"
zguide-flserver3 = "zguide.flserver:model3_main"
zguide-lpclient = "zguide.lazypirate:client_main"
zguide-lpserver = "zguide.lazypirate:server_main"
zguide-spqueue = "zguide.simplepirate:queue_main"
zguide-spworker = "zguide.simplepirate:worker_main"
zguide-ppqueue = "zguide.paranoidpirate:queue_main"
zguide-ppworker = "zguide.paranoidpirate:worker_main"
zguide-lbbroker = "zguide.loadbalance:main"

[tool.hatch.build.targets.wheel]
packages = ["zguide"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
