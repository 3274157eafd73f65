# bililive

A command-line tool that watches live stream rooms and records them to disk
while they are live. Each watched room is polled at an interval; when it goes
live a recorder starts, and when it ends (or listening stops) the recorder is
closed. Recording is done by running FFmpeg, or, for `.flv` streams when
enabled, by a built-in FLV parser (`bililive.flv.FlvParser`).

## Installation

```
pip install .
```

FFmpeg must be on your `PATH` (or as `./ffmpeg`), or be given with
`--ffmpeg-path` / `ffmpeg_path`. The program exits at start-up if it cannot
be found.

## Usage

Record one room, writing files below `./recordings`:

```
bililive -i https://live.bilibili.com/1030 -o ./recordings
```

Use a configuration file instead of flags (other flags are then ignored):

```
bililive -c config.yml
```

Enable the HTTP API:

```
bililive --enable-rpc --rpc-bind 127.0.0.1:8080 -i https://live.bilibili.com/1030
```

Flags:

- `-i/--input URL` — a room to watch; may be repeated
- `-o/--output PATH` — where recordings are written (default `./`)
- `-t/--interval SECONDS` — how often room status is checked (default 20)
- `-c/--config FILE` — read settings from a YAML file
- `--ffmpeg-path PATH` — the FFmpeg binary to use
- `--enable-rpc` — start the HTTP API server
- `--rpc-bind ADDR` — server address (default `:8080`)
- `--native-flv-parser` — use the built-in parser for `.flv` streams
- `--output-file-tmpl TEMPLATE` — file name template (see below)
- `--split-strategies on_room_name_changed` or `max_duration:1h` — split
  recordings when the room title changes, or after a duration of at least one
  minute; may be repeated
- `--debug` — debug logging
- `--version`

If the server is disabled and no rooms are given, a `config.yml` next to the
program is tried. The process runs until it receives SIGINT, SIGTERM or SIGHUP.

Logs go to stderr and, depending on the `log` settings, to `bililive-go.log`
(overwritten each run) and to a `run-<date-time>.log` file.

## Configuration file

```yaml
rpc:
  enable: true
  bind: 127.0.0.1:8080
debug: false
interval: 30
out_put_path: ./
ffmpeg_path: ""
log:
  out_put_folder: ./
  save_last_log: true
  save_every_log: false
feature:
  use_native_flv_parser: false
  remove_symbol_other_character: false
live_rooms:
  - url: https://live.bilibili.com/1030
    is_listening: true
    quality: 0
  - https://live.bilibili.com/493
out_put_tmpl: ""
video_split_strategies:
  on_room_name_changed: false
  max_duration: 0s
cookies:
  live.bilibili.com: "name=value; other=value"
on_record_finished:
  convert_to_mp4: false
  delete_flv_after_convert: false
timeout_in_us: 60000000
```

Each entry of `live_rooms` is either a URL string or a mapping with `url`,
`is_listening` and `quality`. `max_duration` takes durations such as `90m` or
`1h30m`. `cookies` maps a host to a `name=value; name=value` string sent to
that platform. With `convert_to_mp4`, each finished recording is copied to
`<file>.mp4` with FFmpeg, and the original deleted if
`delete_flv_after_convert` is set.

## File name templates

`out_put_tmpl` is a Jinja2 template, rendered below `out_put_path`. It sees
`host_name`, `room_name`, `status`, `audio_only`, `platform_cn_name` and
`info`, the function `now()`, and the filters `filenameFilter`,
`replaceIllegalChar`, `unescapeHTMLEntity`, `decodeUnicode` and
`date(layout)`, where the layout is written with the reference time, e.g.
`"2006-01-02 15-04-05"`. The default is:

```
{{ platform_cn_name }}/{{ host_name | filenameFilter }}/[{{ now() | date("2006-01-02 15-04-05") }}][{{ host_name | filenameFilter }}][{{ room_name | filenameFilter }}].flv
```

A template with a syntax error falls back to the default. HLS streams are
saved as `.ts` and audio-only rooms as `.aac`.

## HTTP API

With the server enabled, these routes are answered under `/api`:

- `GET /api/info` — application information
- `GET /api/lives` — all rooms, sorted by id
- `POST /api/lives` — add rooms from a JSON list of `{"url": ..., "listen": true}`
- `GET /api/lives/{id}`, `DELETE /api/lives/{id}` — inspect or remove a room
- `GET /api/lives/{id}/start`, `GET /api/lives/{id}/stop` — start or stop listening
- `GET /api/config` — the running configuration as JSON
- `PUT /api/config` — save the running configuration to its file
- `GET /api/raw-config` — the configuration as YAML in `{"config": ...}`
- `PUT /api/raw-config` — replace the configuration from `{"config": "<yaml>"}`,
  adding, removing, starting and stopping rooms to match, and save it
- `GET /api/file/{path}` — list a directory below the output path
- `GET /api/metrics` — room status, live duration and recorded bytes in the
  Prometheus text format

Recorded files are served under `/files/`.

## Using it from Python

`bililive.server.Server(instance).handle(method, path, body)` answers a request
without a socket; the handlers themselves are in `bililive.handlers`.
Configuration is loaded with `bililive.configs.new_config_with_file` and
checked with `Config.verify()`. New platforms can be added by calling
`bililive.live.register(domain, builder)` with a builder whose
`build(url, *options)` returns a `bililive.live.BaseLive` subclass.

## What it does not do

- Only rooms on `live.bilibili.com` are supported; URLs of other sites are
  rejected with "not support this url".
- No web interface is bundled. Requests outside `/api` and `/files/` are
  served from `bililive/webapp/build` if such a directory exists, and answered
  with 404 otherwise.
- Metrics are only exposed through `/api/metrics`; there is no separate
  metrics client or push support.