"""
GLSL sources for compositing N calibrated sensor images onto a surface.

The vertex stage projects each vertex into every sensor's texture space; the
fragment stage samples every sensor in front of the fragment, weights the
samples by a border fade and averages them. Per-sensor code is unrolled since
GLSL 1.20 cannot index sampler arrays with a loop variable.
"""

import functools
from dataclasses import dataclass

from oriented_imagery.constants import BORDER_FADE

# Uniform names shared with the layer's uniform snapshot.
U_MODEL_VIEW = "u_model_view"
U_PROJECTION = "u_projection"
U_SENSOR_MVP = "u_sensor_mvp"
U_TEXTURE = "u_texture"
U_SIZE = "u_size"
U_PPS = "u_pps"
U_DISTORTION = "u_distortion"
U_L1L2 = "u_l1l2"
A_POS = "a_pos"


@dataclass(frozen=True)
class ProgramSource:
    vertex_source: str
    fragment_source: str
    sensor_count: int
    uses_distortion: bool


VERT_TEMPLATE = r"""
#version 120
#define N {count}
attribute vec3 a_pos;

uniform mat4 u_model_view;
uniform mat4 u_projection;
uniform mat4 u_sensor_mvp[N];

varying vec4 v_texcoord[N];

void main() {{
    vec4 pos_view = u_model_view * vec4(a_pos, 1.0);
    for (int i = 0; i < N; ++i) v_texcoord[i] = u_sensor_mvp[i] * pos_view;
    gl_Position = u_projection * pos_view;
}}
"""

FRAG_HEADER = r"""
#version 120
#define N {count}
varying vec4 v_texcoord[N];

uniform sampler2D u_texture[N];
uniform vec2 u_size[N];
"""

FRAG_DISTORTION_UNIFORMS = r"""
uniform vec2 u_pps[N];
uniform vec4 u_distortion[N];  // r3, r5, r7, limit^2
uniform vec3 u_l1l2[N];        // l1, l2, etats
"""

FRAG_BORDER_FADE = r"""
const float BORDER_FADE = {fade};

// Pixel coordinates -> texture coordinates; returns the fade weight.
float border_fade(inout vec2 p, vec2 s) {{
    p.y = s.y - p.y;
    p /= s;
    vec2 d = min(p, vec2(1.0) - p);
    return min(min(d.x, d.y) / BORDER_FADE, 1.0);
}}
"""

# Points outside the validity radius are moved off the image (d < 0).
FRAG_DISTORTION_FUNCS = r"""
void distort_radial(inout vec2 p, vec4 dist, vec2 pps) {
    vec2 v = p - pps;
    float v2 = dot(v, v);
    if (v2 > dist.w) p = vec2(-1.0);
    else p += (v2 * (dist.x + v2 * (dist.y + v2 * dist.z))) * v;
}

void distort(inout vec2 p, vec4 dist, vec3 l1l2, vec2 pps) {
    if ((l1l2.x == 0.0) && (l1l2.y == 0.0)) {
        distort_radial(p, dist, pps);
        return;
    }
    vec2 AB = (p - pps) / l1l2.z;
    float R = length(AB);
    float lambda = (R > 0.0) ? atan(R) / R : 1.0;
    vec2 ab = lambda * AB;
    float rho2 = dot(ab, ab);
    if (rho2 > dist.w) {
        p = vec2(-1.0);
        return;
    }
    float r357 = (1.0 + rho2 * (dist.x + rho2 * (dist.y + rho2 * dist.z))) * l1l2.z;
    p = pps + r357 * ab + vec2((l1l2.x * ab.x + l1l2.y * ab.y) * l1l2.z, l1l2.y * ab.x * l1l2.z);
}
"""

FRAG_SENSOR_BLOCK = r"""
    // sensor {i}
    if (v_texcoord[{i}].z > 0.0) {{
        p = v_texcoord[{i}].xy / v_texcoord[{i}].z;{distort}
        d = border_fade(p, u_size[{i}]);
        if (d > 0.0) {{
            c = d * texture2D(u_texture[{i}], p);
            color += c;
            if (c.a > 0.0) ++blend;
        }}
    }}"""

FRAG_DISTORT_CALL = "\n        distort(p, u_distortion[{i}], u_l1l2[{i}], u_pps[{i}]);"

FRAG_MAIN = r"""
void main() {{
    vec4 color = vec4(0.0);
    vec2 p;
    vec4 c;
    float d;
    int blend = 0;
{blocks}

    if (color.a > 0.0) {{
        color /= color.a;
    }} else {{
        color = vec4(0.0);
    }}
    gl_FragColor = color;
}}
"""


def vertex_source(sensor_count: int) -> str:
    return VERT_TEMPLATE.format(count=sensor_count)


def fragment_source(sensor_count: int, with_distortion: bool) -> str:
    parts = [FRAG_HEADER.format(count=sensor_count)]
    if with_distortion:
        parts.append(FRAG_DISTORTION_UNIFORMS)
    parts.append(FRAG_BORDER_FADE.format(fade=repr(float(BORDER_FADE))))
    if with_distortion:
        parts.append(FRAG_DISTORTION_FUNCS)

    blocks = []
    for i in range(sensor_count):
        distort = FRAG_DISTORT_CALL.format(i=i) if with_distortion else ""
        blocks.append(FRAG_SENSOR_BLOCK.format(i=i, distort=distort))
    parts.append(FRAG_MAIN.format(blocks="".join(blocks)))
    return "".join(parts)


@functools.lru_cache(maxsize=None)
def generate_program(sensor_count: int, with_distortion: bool) -> ProgramSource:
    if sensor_count < 1:
        raise ValueError(f"sensor_count must be >= 1, got {sensor_count}")
    return ProgramSource(
        vertex_source=vertex_source(sensor_count),
        fragment_source=fragment_source(sensor_count, with_distortion),
        sensor_count=sensor_count,
        uses_distortion=bool(with_distortion),
    )
