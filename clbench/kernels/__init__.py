"""OpenCL C sources for the benchmarked kernels (loaded by file name)."""
