#!/usr/bin/env python3
import argparse
import asyncio
import logging
import os

from oriented_imagery.config import load_config
from oriented_imagery.layer import load_layer

log = logging.getLogger("oriented_imagery")


async def dump_shaders(config, out_dir: str):
    layer = await load_layer(config)
    program = layer.composite_program()
    os.makedirs(out_dir, exist_ok=True)
    suffix = f"n{program.sensor_count}{'_distort' if program.uses_distortion else ''}"
    for kind, src in (("vert", program.vertex_source), ("frag", program.fragment_source)):
        path = os.path.join(out_dir, f"composite_{suffix}.{kind}")
        with open(path, "w") as f:
            f.write(src)
        log.info(f"[main] Wrote {path}")


def main():
    ap = argparse.ArgumentParser(description="Walk through calibrated panoramic captures")
    ap.add_argument("--config", default="layer.yaml", help="Path to layer config file")
    ap.add_argument("--fullscreen", action="store_true")
    ap.add_argument("--dump-shaders", metavar="DIR", help="Write the generated shaders to DIR and exit")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)

    if args.dump_shaders:
        asyncio.run(dump_shaders(config, args.dump_shaders))
        return

    # GL/glfw are only needed for the interactive viewer
    from oriented_imagery.viewer import Viewer

    asyncio.run(Viewer(config, fullscreen=args.fullscreen).run())


if __name__ == "__main__":
    main()
