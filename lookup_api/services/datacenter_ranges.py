"""
Known datacenter / VPN provider IPv4 networks.

Each provider lists /16 blocks by second octet; adjacent blocks are collapsed
into larger networks when the table is built.
"""
import ipaddress
from typing import Dict, Iterable, List, Tuple

Block = Tuple[int, Iterable[int]]


def _span(start: int, end: int) -> range:
    return range(start, end + 1)


PROVIDER_BLOCKS: Dict[str, List[Block]] = {
    "digitalocean": [
        (104, [131, 236, 238]), (138, [68, 197]), (142, [93]), (157, [230]), (159, [65, 89]),
        (161, [35]), (162, [243]), (164, [90]), (165, [22, 227]), (167, [71, 172]), (174, [138]),
        (178, [62, 128]), (188, [166]), (192, [241]), (198, [199]), (206, [189]), (209, [97]),
    ],
    "vultr": [
        (45, [32, 63, 76, 77]), (66, [42]), (95, [179]), (104, [156]), (108, [61]), (140, [82]),
        (149, [28]), (155, [138]), (207, [246]), (208, [167]), (209, [250]), (216, [128]), (217, [69]),
    ],
    "linode": [
        (45, [33, 56, 79]), (50, [116]), (66, [175]), (69, [164]), (72, [14]), (74, [207]), (96, [126]),
        (97, [107]), (139, [144, 162]), (143, [42]), (170, [187]), (172, [104, 105]), (173, [230, 255]),
        (176, [58]), (178, [79]), (192, [46]), (194, [195]), (198, [58]), (212, [71]), (213, [52]),
    ],
    "aws": [
        (3, [0, 1, 2, 5, 6, *_span(8, 27)]),
        (13, [*_span(48, 58), 112, 113, 114, *_span(124, 127), *_span(208, 214), *_span(228, 239), *_span(244, 251)]),
        (18, [
            *_span(130, 136), *_span(138, 144), *_span(156, 159), 162, 163, *_span(166, 171),
            *_span(175, 185), *_span(188, 225), *_span(228, 237), 246, 252, 253,
        ]),
        (34, _span(192, 255)),
    ],
    "gcp": [
        (34, _span(64, 176)),
        (35, _span(184, 247)),
    ],
    "consumer_vpn": [
        (185, [*_span(230, 237), 93, 94, 95, 156, 159, 212]), (89, [187, 238]), (91, [132]), (92, [119]),
        (103, [86]), (146, [70]), (149, [34]), (154, [47]), (169, [150]), (193, [29, 32, 56]),
        (194, [35, 36]), (195, [206]), (196, [240]), (198, [44, 54]), (199, [116]), (212, [102]),
        (217, [138]),
    ],
    "hetzner": [
        (5, [9]), (46, [4]), (78, [46, 47]), (88, [198, 99]), (94, [130]), (95, [216]), (116, [202, 203]),
        (128, [140]), (135, [181]), (136, [243]), (138, [201]), (142, [132]), (144, [76]), (148, [251]),
        (157, [90]), (159, [69]), (162, [55]), (167, [233]), (168, [119]), (176, [9]), (178, [63]),
        (188, [40]), (195, [201]), (213, [133, 239]),
    ],
    "ovh": [
        (51, [38, 68, 75, 77, 79, 81, 83, 89, 91, 161, 178, 195, 210, 222]), (54, _span(36, 39)),
        (57, [128, 129]), (91, [121, 134]), (92, [222]), (94, [23]), (135, [125]), (137, [74]), (139, [99]),
        (141, [94, 95]), (142, [4, 44]), (144, [217]), (145, [239]), (147, [135]), (149, [56]), (151, [80]),
        (158, [69]), (163, [172]), (164, [132]), (167, [114]), (176, [31]), (178, [32, 33]), (185, [15]),
        (188, [165]), (192, [95, 99]), (193, [70]), (195, [154]), (198, [27, 50, 100, 245]),
        (213, [32, 186, 251]), (217, [182]),
    ],
}


def build_networks(blocks: Dict[str, List[Block]] = PROVIDER_BLOCKS) -> List[ipaddress.IPv4Network]:
    networks = [
        ipaddress.IPv4Network(f"{first}.{second}.0.0/16")
        for provider_blocks in blocks.values()
        for first, seconds in provider_blocks
        for second in seconds
    ]
    return list(ipaddress.collapse_addresses(networks))


DATACENTER_NETWORKS: List[ipaddress.IPv4Network] = build_networks()
