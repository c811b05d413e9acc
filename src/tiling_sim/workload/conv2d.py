"""
2D convolution operation definition.

    Out[c_out][h_out][w_out] += In[c_in][h_out+k_h][w_out+k_w] * K[c_out][c_in][k_h][k_w]

Valid convolution only: stride 1, no padding, no batch dimension.
"""

from tiling_sim.utils import ConfigurationError, require_positive
from tiling_sim.workload.operation import Operation, running_base_addresses
from tiling_sim.workload.tensor import Tensor3D, Tensor4D

CONV2D_LOOP_DIMS = ("c_out", "h_out", "w_out", "c_in", "k_h", "k_w")

# A curated subset of the 720 permutations: output-stationary,
# spatial-outer, and two weight-stationary variants.
CONV2D_LOOP_ORDERS = {
    "c_out,h_out,w_out,c_in,k_h,k_w": ("c_out", "h_out", "w_out", "c_in", "k_h", "k_w"),
    "h_out,w_out,c_out,c_in,k_h,k_w": ("h_out", "w_out", "c_out", "c_in", "k_h", "k_w"),
    "c_in,k_h,k_w,c_out,h_out,w_out": ("c_in", "k_h", "k_w", "c_out", "h_out", "w_out"),
    "k_h,k_w,c_in,c_out,h_out,w_out": ("k_h", "k_w", "c_in", "c_out", "h_out", "w_out"),
}


def create_conv2d_operation(
    input_h: int = 8,
    input_w: int = 8,
    channels_in: int = 4,
    channels_out: int = 4,
    kernel_h: int = 3,
    kernel_w: int = 3,
    element_size: int = 4,
) -> Operation:
    """
    Create the 2D convolution operation.

    Output extent is ``input - kernel + 1`` in each spatial dimension. Only
    the output spatial dimensions (h_out, w_out) are tileable.

    Args:
        input_h: Input height
        input_w: Input width
        channels_in: Input channels
        channels_out: Output channels (filters)
        kernel_h: Kernel height
        kernel_w: Kernel width
        element_size: Bytes per element

    Returns:
        Operation definition

    Raises:
        ConfigurationError: if any size, or a derived output extent, is not positive
    """
    input_h = require_positive("input height", input_h)
    input_w = require_positive("input width", input_w)
    channels_in = require_positive("input channels", channels_in)
    channels_out = require_positive("output channels", channels_out)
    kernel_h = require_positive("kernel height", kernel_h)
    kernel_w = require_positive("kernel width", kernel_w)
    element_size = require_positive("element size", element_size)

    output_h = input_h - kernel_h + 1
    output_w = input_w - kernel_w + 1
    if output_h <= 0 or output_w <= 0:
        raise ConfigurationError(
            f"Kernel {kernel_h}x{kernel_w} does not fit input {input_h}x{input_w} "
            f"(output would be {output_h}x{output_w})"
        )

    input_elements = input_h * input_w * channels_in
    kernel_elements = kernel_h * kernel_w * channels_in * channels_out
    output_elements = output_h * output_w * channels_out
    base_input, base_kernel, base_output = running_base_addresses(
        [input_elements, kernel_elements, output_elements], element_size
    )

    tensors = (
        Tensor3D(
            name="Input",
            base_address=base_input,
            index_map={"channel": ("c_in",), "row": ("h_out", "k_h"), "col": ("w_out", "k_w")},
            rows=input_h, cols=input_w, channels=channels_in,
        ),
        Tensor4D(
            name="Kernel",
            base_address=base_kernel,
            index_map={"c_out": ("c_out",), "c_in": ("c_in",), "row": ("k_h",), "col": ("k_w",)},
            rows=kernel_h, cols=kernel_w, channels_in=channels_in, channels_out=channels_out,
        ),
        Tensor3D(
            name="Output",
            base_address=base_output,
            index_map={"channel": ("c_out",), "row": ("h_out",), "col": ("w_out",)},
            rows=output_h, cols=output_w, channels=channels_out,
        ),
    )

    return Operation(
        name="conv2d",
        display_name="2D Convolution",
        tensors=tensors,
        loop_dims=CONV2D_LOOP_DIMS,
        loop_bounds={
            "c_out": channels_out,
            "h_out": output_h,
            "w_out": output_w,
            "c_in": channels_in,
            "k_h": kernel_h,
            "k_w": kernel_w,
        },
        loop_orders=CONV2D_LOOP_ORDERS,
        tileable_dims=("h_out", "w_out"),
        tile_sizes=(2, 4),
        element_size=element_size,
        code_template="Out[c_out][h][w] += In[c_in][h+kh][w+kw] * K[c_out][c_in][kh][kw]",
        params={
            "input_h": input_h,
            "input_w": input_w,
            "channels_in": channels_in,
            "channels_out": channels_out,
            "kernel_h": kernel_h,
            "kernel_w": kernel_w,
        },
    )
